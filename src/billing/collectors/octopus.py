"""Octopus Energy API response parser.

Reads consumption, unit rate and standing charge data saved from the
Octopus REST API. Responses look like ``{"count": ..., "results": [...]}``
with newest entries first; everything returned here is oldest first.

Consumption can also be read from a CSV with columns:
interval_start, interval_end, consumption (or consumption_kwh)
"""

import csv
import json
from datetime import datetime
from pathlib import Path
from typing import Any

from ..exceptions import ProviderFormatError
from ..models import ConsumptionInterval, RatePeriod, StandingChargePeriod


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO 8601 timestamp, accepting a trailing 'Z' for UTC."""
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _results(data: Any) -> list[dict]:
    if isinstance(data, dict):
        data = data.get("results")
    if not isinstance(data, list):
        raise ProviderFormatError("Expected a list of results")
    return data


def _load_json(path: Path) -> Any:
    with open(path) as f:
        try:
            return json.load(f)
        except json.JSONDecodeError as e:
            raise ProviderFormatError(f"{path} is not valid JSON: {e}") from e


def parse_consumption(data: Any) -> list[ConsumptionInterval]:
    """Parse a consumption response into intervals, oldest first."""
    intervals = []
    for row in _results(data):
        try:
            intervals.append(
                ConsumptionInterval(
                    consumption=float(row["consumption"]),
                    interval_start=parse_timestamp(row["interval_start"]),
                    interval_end=parse_timestamp(row["interval_end"]),
                )
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ProviderFormatError(f"Invalid consumption row {row}: {e}") from e
    return sorted(intervals, key=lambda i: i.interval_start)


def _parse_periods(data: Any, period_cls):
    periods = []
    for row in _results(data):
        try:
            periods.append(
                period_cls(
                    value_inc_vat=float(row["value_inc_vat"]),
                    valid_from=parse_timestamp(row["valid_from"]),
                    valid_to=parse_timestamp(row["valid_to"]) if row.get("valid_to") else None,
                    payment_method=row.get("payment_method"),
                )
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ProviderFormatError(f"Invalid {period_cls.__name__} row {row}: {e}") from e
    return sorted(periods, key=lambda p: p.valid_from)


def parse_rates(data: Any) -> list[RatePeriod]:
    """Parse a standard-unit-rates response, oldest first.

    Pages fetched month by month can simply be concatenated first.
    """
    return _parse_periods(data, RatePeriod)


def parse_standing_charges(data: Any) -> list[StandingChargePeriod]:
    """Parse a standing-charges response, oldest first."""
    return _parse_periods(data, StandingChargePeriod)


def load_consumption(path: Path) -> list[ConsumptionInterval]:
    """Load consumption from a saved JSON response or a CSV export."""
    if path.suffix.lower() == ".csv":
        return parse_consumption_csv(path)
    return parse_consumption(_load_json(path))


def parse_consumption_csv(csv_path: Path) -> list[ConsumptionInterval]:
    """Parse a consumption CSV export."""
    rows = []
    with open(csv_path, newline="") as f:
        reader = csv.DictReader(f)
        for row in reader:
            value = row.get("consumption") or row.get("consumption_kwh")
            if value is None:
                raise ProviderFormatError(f"Missing consumption in row: {row}")
            rows.append(
                {
                    "consumption": value,
                    "interval_start": row["interval_start"],
                    "interval_end": row["interval_end"],
                }
            )
    return parse_consumption(rows)


def load_rates(path: Path) -> list[RatePeriod]:
    """Load unit rates from a saved JSON response."""
    return parse_rates(_load_json(path))


def load_standing_charges(path: Path) -> list[StandingChargePeriod]:
    """Load standing charges from a saved JSON response."""
    return parse_standing_charges(_load_json(path))
