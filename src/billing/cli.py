"""Command-line interface for bill estimation and tariff comparison."""

import json
import logging
from dataclasses import asdict
from pathlib import Path
from zoneinfo import ZoneInfoNotFoundError

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .analysis.comparison import TariffCandidate, compare_tariffs
from .calculation import AGGREGATE, MONTHLY, ReconciliationRequest, reconcile
from .collectors import octopus, price_caps
from .config import Settings, load_adjustments
from .exceptions import ReconciliationError
from .models import TariffCategory, UnitType

console = Console()

CATEGORY_CHOICE = click.Choice([c.value for c in TariffCategory])
UNIT_CHOICE = click.Choice([u.value for u in UnitType])


@click.group()
@click.option("--adjustments", "adjustments_path", type=click.Path(exists=True), help="Path to adjustments.yaml")
@click.option("-v", "--verbose", is_flag=True, help="Show debug logging")
@click.pass_context
def cli(ctx, adjustments_path, verbose):
    """Estimate energy bills and compare tariffs from meter readings."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )
    ctx.ensure_object(dict)
    ctx.obj["settings"] = Settings.from_env()
    ctx.obj["adjustments"] = load_adjustments(Path(adjustments_path) if adjustments_path else None)


def _load_caps(caps_path, settings):
    if not caps_path:
        return []
    return price_caps.load_caps(Path(caps_path), settings.region, settings.timezone)


def _to_json(result) -> str:
    data = asdict(result)
    data["total_cost"] = round(result.total_cost, 2)
    data["coverage"] = round(result.coverage, 4)
    data["unmatched_intervals"] = [t.isoformat() for t in result.unmatched_intervals]
    data["unmatched_days"] = [d.isoformat() for d in result.unmatched_days]
    return json.dumps(data, indent=2)


@cli.command()
@click.option("--category", type=CATEGORY_CHOICE, required=True, help="Tariff category")
@click.option("--unit", type=UNIT_CHOICE, default="electricity", help="Fuel type (default: electricity)")
@click.option("--consumption", "consumption_path", type=click.Path(exists=True), required=True,
              help="Consumption JSON response or CSV export")
@click.option("--rates", "rates_path", type=click.Path(exists=True), required=True, help="Unit rates JSON")
@click.option("--standing-charges", "standing_path", type=click.Path(exists=True), required=True,
              help="Standing charges JSON")
@click.option("--caps", "caps_path", type=click.Path(exists=True), help="Price cap TSV (needed for SVT)")
@click.option("--region", help="GSP region letter (or set BILLING_REGION)")
@click.option("--monthly", is_flag=True, help="Break the actual cost down by month")
@click.option("--no-annualise", is_flag=True, help="Don't scale partial years up to a full year")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def estimate(ctx, category, unit, consumption_path, rates_path, standing_path, caps_path, region, monthly,
             no_annualise, as_json):
    """Estimate the cost of a consumption series on one tariff."""
    settings = ctx.obj["settings"]
    if region:
        settings.region = region

    try:
        request = ReconciliationRequest(
            category=TariffCategory(category),
            unit_type=UnitType(unit),
            consumption=octopus.load_consumption(Path(consumption_path)),
            rates=octopus.load_rates(Path(rates_path)),
            standing_charges=octopus.load_standing_charges(Path(standing_path)),
            price_caps=_load_caps(caps_path, settings),
            gas_conversion_factor=settings.gas_conversion_factor,
            mode=MONTHLY if monthly else AGGREGATE,
            adjustments=ctx.obj["adjustments"],
            timezone=settings.timezone,
            annualise=not no_annualise,
        )
        result = reconcile(request)
    except (ReconciliationError, FileNotFoundError, ZoneInfoNotFoundError) as e:
        console.print(f"[red]Error: {e}[/red]")
        ctx.exit(1)

    if as_json:
        click.echo(_to_json(result))
        return

    if monthly:
        table = Table(title=f"{category} {unit} cost by month")
        table.add_column("Month", style="cyan")
        table.add_column("Cost", justify="right")
        for bucket in result.cost:
            for label, pounds in bucket.items():
                table.add_row(label, f"£{pounds:.2f}")
        console.print(table)
        console.print(f"Total: [bold]£{result.total_cost:.2f}[/bold]")
        console.print(f"Units: {result.total_unit:.2f} kWh")
    else:
        table = Table(title=f"{category} {unit} annual estimate")
        table.add_column("Item", style="cyan")
        table.add_column("Value", justify="right")
        table.add_row("Unit cost", f"£{result.total_price:.2f}")
        table.add_row("Standing charge", f"£{result.total_standing_charge:.2f}")
        table.add_row("Total", f"£{result.total_cost:.2f}")
        table.add_row("Units", f"{result.total_unit:.2f} kWh")
        console.print(table)

    if result.coverage < 1.0:
        console.print(f"[yellow]Only {result.coverage:.1%} of readings could be priced[/yellow]")
    if result.unmatched_days:
        console.print(f"[yellow]{len(result.unmatched_days)} day(s) without a standing charge[/yellow]")


def _parse_tariff_option(value: str) -> tuple[TariffCategory, Path, Path, Path | None]:
    """Parse CATEGORY=RATES,STANDING[,CONSUMPTION]."""
    try:
        category, files = value.split("=", 1)
        paths = [Path(p) for p in files.split(",")]
        if len(paths) not in (2, 3):
            raise ValueError
        return TariffCategory(category), paths[0], paths[1], paths[2] if len(paths) == 3 else None
    except ValueError:
        raise click.BadParameter(f"Expected CATEGORY=RATES,STANDING[,CONSUMPTION], got {value!r}")


@cli.command()
@click.option("--unit", type=UNIT_CHOICE, default="electricity", help="Fuel type (default: electricity)")
@click.option("--consumption", "consumption_path", type=click.Path(exists=True), required=True,
              help="Consumption JSON response or CSV export")
@click.option("--tariff", "tariffs", multiple=True, required=True,
              help="CATEGORY=RATES,STANDING[,CONSUMPTION] (repeatable)")
@click.option("--caps", "caps_path", type=click.Path(exists=True), help="Price cap TSV (needed for SVT)")
@click.option("--baseline", type=CATEGORY_CHOICE, default="SVT", help="Category to measure savings against")
@click.pass_context
def compare(ctx, unit, consumption_path, tariffs, caps_path, baseline):
    """Compare annual cost across tariffs for the same consumption."""
    settings = ctx.obj["settings"]

    try:
        candidates = []
        for option in tariffs:
            category, rates_path, standing_path, own_consumption = _parse_tariff_option(option)
            candidates.append(
                TariffCandidate(
                    name=f"{category.value} ({rates_path.stem})",
                    category=category,
                    rates=octopus.load_rates(rates_path),
                    standing_charges=octopus.load_standing_charges(standing_path),
                    consumption=octopus.load_consumption(own_consumption) if own_consumption else None,
                )
            )

        results = compare_tariffs(
            octopus.load_consumption(Path(consumption_path)),
            candidates,
            unit_type=UnitType(unit),
            price_caps=_load_caps(caps_path, settings),
            baseline=TariffCategory(baseline),
            adjustments=ctx.obj["adjustments"],
            settings=settings,
        )
    except (ReconciliationError, FileNotFoundError, ZoneInfoNotFoundError) as e:
        console.print(f"[red]Error: {e}[/red]")
        ctx.exit(1)

    table = Table(title=f"Annual {unit} cost by tariff")
    table.add_column("Tariff", style="cyan")
    table.add_column("Total", justify="right")
    table.add_column("Avg rate", justify="right")
    table.add_column(f"vs {baseline}", justify="right")
    table.add_column("Notes", style="dim")

    for r in results:
        if r.saving is None:
            saving = ""
        elif r.saving >= 0:
            saving = f"[green]£{r.saving:.2f}[/green]"
        else:
            saving = f"[red]-£{-r.saving:.2f}[/red]"
        table.add_row(r.name, f"£{r.total_cost:.2f}", f"{r.average_unit_rate:.2f}p", saving, "; ".join(r.notes))

    console.print(table)


if __name__ == "__main__":
    cli()
