"""Ofgem price cap table importer.

Reads the tab-separated price cap table, one row per region and cap period.
Columns: Date, E, G and optionally Region (e.g. "_A"). E and G are the
unit rate caps in pence per kWh.
"""

import csv
import io
from datetime import date, datetime, time
from pathlib import Path
from zoneinfo import ZoneInfo

from ..exceptions import ProviderFormatError
from ..models import PriceCapEntry

DEFAULT_TIMEZONE = "Europe/London"


def normalise_region(region: str) -> str:
    """Region codes appear both as 'A' and '_A'."""
    return region.strip().lstrip("_").upper()


def parse_caps(tsv_text: str, region: str | None = None, timezone: str = DEFAULT_TIMEZONE) -> list[PriceCapEntry]:
    """Parse price cap TSV text, keeping one region's rows, oldest first.

    Cap dates are taken as local midnight in ``timezone``.
    """
    tz = ZoneInfo(timezone)
    wanted = normalise_region(region) if region else None
    caps = []

    reader = csv.DictReader(io.StringIO(tsv_text.strip()), delimiter="\t")
    for row in reader:
        row_region = row.get("Region")
        if wanted and row_region and normalise_region(row_region) != wanted:
            continue
        try:
            day = date.fromisoformat(row["Date"].strip()[:10])
            caps.append(
                PriceCapEntry(
                    effective_date=datetime.combine(day, time.min, tzinfo=tz),
                    electricity=float(row["E"]),
                    gas=float(row["G"]),
                )
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ProviderFormatError(f"Invalid price cap row {row}: {e}") from e

    return sorted(caps, key=lambda c: c.effective_date)


def load_caps(tsv_path: Path, region: str | None = None, timezone: str = DEFAULT_TIMEZONE) -> list[PriceCapEntry]:
    """Load the price cap table from a TSV file."""
    return parse_caps(Path(tsv_path).read_text(), region, timezone)
