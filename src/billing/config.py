"""Settings from the environment and the category adjustment table.

Settings are read from environment variables (a ``.env`` file is loaded
first if present). Adjustments come from ``config/adjustments.yaml``.
"""

import os
from dataclasses import dataclass
from datetime import date
from pathlib import Path

import yaml
from dotenv import load_dotenv

from .calculation import DEFAULT_GAS_CONVERSION_FACTOR, DEFAULT_TIMEZONE
from .models import CategoryAdjustment, TariffCategory, UnitType

DEFAULT_REGION = "A"


@dataclass
class Settings:
    """Per-user calculation settings."""

    gas_conversion_factor: float = DEFAULT_GAS_CONVERSION_FACTOR
    timezone: str = DEFAULT_TIMEZONE
    region: str = DEFAULT_REGION

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        return cls(
            gas_conversion_factor=float(
                os.environ.get("BILLING_GAS_CONVERSION_FACTOR", DEFAULT_GAS_CONVERSION_FACTOR)
            ),
            timezone=os.environ.get("BILLING_TIMEZONE", DEFAULT_TIMEZONE),
            region=os.environ.get("BILLING_REGION", DEFAULT_REGION),
        )


def get_config_path() -> Path | None:
    """Find the adjustments.yaml config file, if there is one."""
    candidates = [
        Path.cwd() / "config" / "adjustments.yaml",
        Path(__file__).parent.parent.parent / "config" / "adjustments.yaml",
        Path.home() / ".config" / "billing" / "adjustments.yaml",
    ]
    for path in candidates:
        if path.exists():
            return path
    return None


def parse_adjustments(data: dict | None) -> list[CategoryAdjustment]:
    """Build adjustments from the parsed YAML document."""
    adjustments = []
    for entry in (data or {}).get("adjustments", []):
        effective_from = entry.get("effective_from")
        if isinstance(effective_from, str):
            effective_from = date.fromisoformat(effective_from)
        adjustments.append(
            CategoryAdjustment(
                category=TariffCategory(entry["category"]),
                price_multiplier=float(entry.get("price_multiplier", 1.0)),
                standing_charge_multiplier=float(entry.get("standing_charge_multiplier", 1.0)),
                unit_type=UnitType(entry["unit"]) if entry.get("unit") else None,
                effective_from=effective_from,
            )
        )
    return adjustments


def load_adjustments(config_path: Path | None = None) -> list[CategoryAdjustment]:
    """Load category adjustments from YAML. No file means no adjustments."""
    path = config_path or get_config_path()
    if path is None:
        return []
    with open(path) as f:
        return parse_adjustments(yaml.safe_load(f))
