"""Data models for consumption readings, tariffs and cost results."""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum


class TariffCategory(str, Enum):
    """Pricing policy that decides how a unit rate is matched to a reading."""

    FIXED = "Fixed"
    SVT = "SVT"
    AGILE = "Agile"
    GO = "Go"
    COSY = "Cosy"
    TRACKER = "Tracker"


class UnitType(str, Enum):
    """Fuel being metered."""

    ELECTRICITY = "electricity"
    GAS = "gas"

    @property
    def code(self) -> str:
        """Single-letter code used by the retailer and the price cap table."""
        return "E" if self is UnitType.ELECTRICITY else "G"


@dataclass(frozen=True)
class ConsumptionInterval:
    """A single metered consumption interval."""

    consumption: float
    interval_start: datetime
    interval_end: datetime


@dataclass(frozen=True)
class RatePeriod:
    """A unit rate (pence per unit, inc VAT) valid over a span of time."""

    value_inc_vat: float
    valid_from: datetime
    valid_to: datetime | None = None  # None = open-ended
    payment_method: str | None = None

    def contains(self, moment: datetime) -> bool:
        return self.valid_from <= moment and (self.valid_to is None or moment < self.valid_to)


@dataclass(frozen=True)
class StandingChargePeriod:
    """A daily standing charge (pence per day, inc VAT)."""

    value_inc_vat: float
    valid_from: datetime
    valid_to: datetime | None = None
    payment_method: str | None = None

    def contains(self, moment: datetime) -> bool:
        return self.valid_from <= moment and (self.valid_to is None or moment < self.valid_to)


@dataclass(frozen=True)
class PriceCapEntry:
    """Regional price cap on variable unit rates, in pence per kWh."""

    effective_date: datetime
    electricity: float
    gas: float

    def for_unit(self, unit_type: UnitType) -> float:
        return self.electricity if unit_type is UnitType.ELECTRICITY else self.gas


@dataclass(frozen=True)
class RateResolution:
    """Outcome of looking up the unit rate for one consumption interval.

    An unmatched interval has ``rate`` of None and is priced at zero, but is
    still reported so missing data is never mistaken for free energy.
    """

    interval_start: datetime
    rate: float | None

    @property
    def matched(self) -> bool:
        return self.rate is not None


@dataclass
class CostEstimate:
    """Annualised cost estimate. Money values are in pounds."""

    total_cost: float
    total_unit: float
    total_price: float
    total_standing_charge: float
    coverage: float = 1.0
    unmatched_intervals: list[datetime] = field(default_factory=list)
    unmatched_days: list[date] = field(default_factory=list)


@dataclass
class MonthlyCostBreakdown:
    """Per-month net costs in pounds, oldest month first."""

    cost: list[dict[str, float]]
    total_unit: float
    total_price: float
    total_standing_charge: float
    coverage: float = 1.0
    unmatched_intervals: list[datetime] = field(default_factory=list)
    unmatched_days: list[date] = field(default_factory=list)

    @property
    def total_cost(self) -> float:
        """Sum of the monthly buckets."""
        return sum(value for bucket in self.cost for value in bucket.values())


@dataclass(frozen=True)
class CategoryAdjustment:
    """Known retailer price change not yet reflected in historical rates.

    Multipliers apply to annualised estimates for the matching category, and
    only when the consumption series reaches ``effective_from``.
    """

    category: TariffCategory
    price_multiplier: float = 1.0
    standing_charge_multiplier: float = 1.0
    unit_type: UnitType | None = None  # None = both fuels
    effective_from: date | None = None
