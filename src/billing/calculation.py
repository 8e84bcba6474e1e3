"""Bill estimation: reconcile consumption against rates and standing charges.

Two entry points share one scan over the consumption series:

- ``calculate_price`` gives an annualised estimate for tariff comparison.
- ``calculate_monthly_prices`` splits the actual cost by calendar month.

All pence figures are summed unrounded and only converted to pounds and
rounded (half away from zero) at the end.
"""

import logging
from collections.abc import Iterator
from dataclasses import dataclass, field, replace
from datetime import date, datetime, tzinfo
from decimal import ROUND_HALF_UP, Decimal
from zoneinfo import ZoneInfo

from .exceptions import NegativeConsumptionError, SeriesOrderError
from .models import (
    CategoryAdjustment,
    ConsumptionInterval,
    CostEstimate,
    MonthlyCostBreakdown,
    PriceCapEntry,
    RatePeriod,
    StandingChargePeriod,
    TariffCategory,
    UnitType,
)
from .tariffs import (
    PriceCapTable,
    StandingChargeMatcher,
    billing_day,
    expected_samples,
    get_rate_matcher,
    localise,
)

logger = logging.getLogger(__name__)

DEFAULT_GAS_CONVERSION_FACTOR = 11.1  # kWh per m³, typical calorific value
DEFAULT_TIMEZONE = "Europe/London"

AGGREGATE = "aggregate"
MONTHLY = "monthly"


@dataclass
class ReconciliationRequest:
    """Everything needed to price one tariff against one consumption series."""

    category: TariffCategory
    unit_type: UnitType
    consumption: list[ConsumptionInterval]
    rates: list[RatePeriod]
    standing_charges: list[StandingChargePeriod]
    price_caps: list[PriceCapEntry] = field(default_factory=list)
    gas_conversion_factor: float = DEFAULT_GAS_CONVERSION_FACTOR
    mode: str = AGGREGATE
    adjustments: list[CategoryAdjustment] = field(default_factory=list)
    timezone: str = DEFAULT_TIMEZONE
    annualise: bool = True

    def __post_init__(self):
        self.category = TariffCategory(self.category)
        self.unit_type = UnitType(self.unit_type)
        self._localise_series()

    def _localise_series(self):
        """Pin naive timestamps to the billing timezone so every series compares alike."""
        tz = self.tz
        self.consumption = [
            replace(i, interval_start=localise(i.interval_start, tz), interval_end=localise(i.interval_end, tz))
            for i in self.consumption
        ]
        self.rates = [
            replace(p, valid_from=localise(p.valid_from, tz), valid_to=localise(p.valid_to, tz))
            for p in self.rates
        ]
        self.standing_charges = [
            replace(p, valid_from=localise(p.valid_from, tz), valid_to=localise(p.valid_to, tz))
            for p in self.standing_charges
        ]
        self.price_caps = [replace(c, effective_date=localise(c.effective_date, tz)) for c in self.price_caps]

    @property
    def tz(self) -> tzinfo:
        return ZoneInfo(self.timezone)

    @property
    def consumption_multiplier(self) -> float:
        """Converts metered units to kWh (gas meters read in m³)."""
        return self.gas_conversion_factor if self.unit_type is UnitType.GAS else 1.0


@dataclass
class _Totals:
    """Running totals for one scan, in pence."""

    price: float = 0.0
    unit: float = 0.0
    standing_charge: float = 0.0
    samples: int = 0
    matched: int = 0
    unmatched_intervals: list[datetime] = field(default_factory=list)
    unmatched_days: list[date] = field(default_factory=list)

    @property
    def coverage(self) -> float:
        """Fraction of intervals with a resolved unit rate."""
        if not self.samples:
            return 1.0
        return self.matched / self.samples


def round_half_up(value: float, places: int = 2) -> float:
    """Round half away from zero, as bills do (not banker's rounding)."""
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def month_label(moment: datetime, tz: tzinfo) -> str:
    """Label such as 'Jan-24' for the billing month of a timestamp."""
    local = moment.astimezone(tz) if moment.tzinfo is not None else moment
    return local.strftime("%b-%y")


def _check_ascending(entries, name: str, attr: str = "valid_from") -> None:
    starts = [getattr(e, attr) for e in entries]
    for previous, current in zip(starts, starts[1:]):
        if current < previous:
            raise SeriesOrderError(f"{name} must be in ascending order: {current} follows {previous}")


def validate_request(request: ReconciliationRequest) -> None:
    """Check input series preconditions, raising before any pricing happens."""
    previous = None
    for interval in request.consumption:
        if interval.consumption < 0:
            raise NegativeConsumptionError(
                f"Negative consumption {interval.consumption} at {interval.interval_start}"
            )
        if interval.interval_end < interval.interval_start:
            raise SeriesOrderError(f"Interval at {interval.interval_start} ends before it starts")
        if previous is not None:
            if interval.interval_start <= previous.interval_start:
                raise SeriesOrderError(
                    f"Consumption must be in ascending order: {interval.interval_start} "
                    f"follows {previous.interval_start}"
                )
            if interval.interval_start < previous.interval_end:
                raise SeriesOrderError(
                    f"Consumption interval at {interval.interval_start} overlaps the one "
                    f"ending {previous.interval_end}"
                )
        previous = interval

    _check_ascending(request.rates, "Rates")
    _check_ascending(request.standing_charges, "Standing charges")
    _check_ascending(request.price_caps, "Price caps", attr="effective_date")


def _scan(request: ReconciliationRequest, totals: _Totals) -> Iterator[ConsumptionInterval]:
    """Walk the consumption series, adding each interval's cost to ``totals``.

    Each interval is yielded *before* it is added, so callers see the totals
    as they stood at the end of the previous interval.
    """
    tz = request.tz
    rate_matcher = get_rate_matcher(
        request.category, request.rates, PriceCapTable(request.price_caps), request.unit_type
    )
    standing_charges = StandingChargeMatcher(request.category, request.standing_charges, tz)
    multiplier = request.consumption_multiplier
    current_day = None

    for interval in request.consumption:
        yield interval

        units = interval.consumption * multiplier
        totals.samples += 1
        totals.unit += units

        resolution = rate_matcher.resolve(interval)
        if resolution.matched:
            totals.matched += 1
            totals.price += resolution.rate * units
        else:
            totals.unmatched_intervals.append(interval.interval_start)

        day = billing_day(interval.interval_start, tz)
        if day != current_day:
            current_day = day
            charge = standing_charges.charge_for(day, aware=interval.interval_start.tzinfo is not None)
            if charge is None:
                totals.unmatched_days.append(day)
            else:
                totals.standing_charge += charge

    if totals.unmatched_intervals or totals.unmatched_days:
        logger.warning(
            "%s %s: %d of %d intervals had no unit rate, %d days had no standing charge",
            request.category.value,
            request.unit_type.value,
            len(totals.unmatched_intervals),
            totals.samples,
            len(totals.unmatched_days),
        )


def _applicable_adjustments(request: ReconciliationRequest) -> list[CategoryAdjustment]:
    if not request.consumption:
        return []
    last_day = billing_day(request.consumption[-1].interval_start, request.tz)
    return [
        adj
        for adj in request.adjustments
        if adj.category is request.category
        and (adj.unit_type is None or adj.unit_type is request.unit_type)
        and (adj.effective_from is None or last_day >= adj.effective_from)
    ]


def calculate_price(request: ReconciliationRequest) -> CostEstimate:
    """Estimate a year's cost on a tariff from the supplied consumption.

    If the series covers less than a year (365 daily or 365 * 48 half-hourly
    samples) the unit and standing charge costs are scaled up in proportion.
    """
    validate_request(request)
    totals = _Totals()
    for _ in _scan(request, totals):
        pass

    price = totals.price
    standing_charge = totals.standing_charge
    expected = expected_samples(request.category)
    if request.annualise and 0 < totals.samples < expected:
        scale = expected / totals.samples
        price *= scale
        standing_charge *= scale

    price_pounds = price / 100
    standing_charge_pounds = standing_charge / 100
    for adjustment in _applicable_adjustments(request):
        price_pounds *= adjustment.price_multiplier
        standing_charge_pounds *= adjustment.standing_charge_multiplier

    total_price = round_half_up(price_pounds)
    total_standing_charge = round_half_up(standing_charge_pounds)

    return CostEstimate(
        total_cost=round_half_up(total_price + total_standing_charge),
        total_unit=totals.unit,
        total_price=total_price,
        total_standing_charge=total_standing_charge,
        coverage=totals.coverage,
        unmatched_intervals=totals.unmatched_intervals,
        unmatched_days=totals.unmatched_days,
    )


def _close_month(buckets: list[dict[str, float]], label: str, totals: _Totals) -> None:
    """Append a month's bucket as the cumulative total less earlier buckets.

    Taking the difference of running totals, rather than summing each month
    independently, keeps the buckets adding up to the rounded grand total.
    """
    so_far = round_half_up(totals.price / 100) + round_half_up(totals.standing_charge / 100)
    already_billed = sum(value for bucket in buckets for value in bucket.values())
    buckets.append({label: round_half_up(so_far - already_billed)})


def calculate_monthly_prices(request: ReconciliationRequest) -> MonthlyCostBreakdown:
    """Split the actual (not annualised) cost of a series by calendar month."""
    validate_request(request)
    tz = request.tz
    totals = _Totals()
    buckets: list[dict[str, float]] = []
    current_month = None

    for interval in _scan(request, totals):
        label = month_label(interval.interval_start, tz)
        if current_month is not None and label != current_month:
            _close_month(buckets, current_month, totals)
        current_month = label

    if current_month is not None:
        _close_month(buckets, current_month, totals)

    return MonthlyCostBreakdown(
        cost=buckets,
        total_unit=totals.unit,
        total_price=round_half_up(totals.price / 100),
        total_standing_charge=round_half_up(totals.standing_charge / 100),
        coverage=totals.coverage,
        unmatched_intervals=totals.unmatched_intervals,
        unmatched_days=totals.unmatched_days,
    )


def reconcile(request: ReconciliationRequest) -> CostEstimate | MonthlyCostBreakdown:
    """Price a request in the mode it asks for."""
    if request.mode == AGGREGATE:
        return calculate_price(request)
    if request.mode == MONTHLY:
        return calculate_monthly_prices(request)
    raise ValueError(f"Unknown mode {request.mode!r}, expected '{AGGREGATE}' or '{MONTHLY}'")
