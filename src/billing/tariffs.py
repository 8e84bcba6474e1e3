"""Unit rate, standing charge and price cap matching.

Each tariff category has its own rate matcher. The matcher is picked once per
calculation with ``get_rate_matcher`` and then asked for the rate of every
consumption interval in order, so matchers that walk the rate series keep a
cursor that only ever moves forward.
"""

import logging
from bisect import bisect_right
from collections.abc import Sequence
from datetime import date, datetime, time, tzinfo
from itertools import islice

from .models import (
    ConsumptionInterval,
    PriceCapEntry,
    RatePeriod,
    RateResolution,
    StandingChargePeriod,
    TariffCategory,
    UnitType,
)

logger = logging.getLogger(__name__)

# Rates and standing charges quoted for customers not paying by direct debit
EXCLUDED_PAYMENT_METHODS = frozenset({"NON_DIRECT_DEBIT"})

# Categories priced per half-hour slot; the rest are read as daily totals
HALF_HOURLY_CATEGORIES = frozenset({TariffCategory.AGILE, TariffCategory.GO, TariffCategory.COSY})

DAYS_PER_YEAR = 365
SLOTS_PER_DAY = 48


def expected_samples(category: TariffCategory) -> int:
    """Number of consumption samples in a full comparison year."""
    if TariffCategory(category) in HALF_HOURLY_CATEGORIES:
        return DAYS_PER_YEAR * SLOTS_PER_DAY
    return DAYS_PER_YEAR


def filter_payment_method(periods):
    """Drop periods quoted for a non-default payment method."""
    return [p for p in periods if p.payment_method not in EXCLUDED_PAYMENT_METHODS]


def billing_day(moment: datetime, tz: tzinfo) -> date:
    """Calendar day of a timestamp in the billing timezone.

    Naive timestamps are taken to already be local time.
    """
    if moment.tzinfo is None:
        return moment.date()
    return moment.astimezone(tz).date()


def localise(moment: datetime | None, tz: tzinfo) -> datetime | None:
    """Attach ``tz`` to a naive timestamp, which is taken to be local time."""
    if moment is None or moment.tzinfo is not None:
        return moment
    return moment.replace(tzinfo=tz)


def start_of_day(day: date, tz: tzinfo | None) -> datetime:
    """Local midnight at the start of ``day``."""
    return datetime.combine(day, time.min, tzinfo=tz)


def _latest_starting(periods: Sequence, moment: datetime):
    """Return the most recent period starting at or before ``moment`` that contains it.

    An open-ended period can be overlapped by a later, shorter one; once that
    one has ended the earlier period applies again.
    """
    index = bisect_right(periods, moment, key=lambda p: p.valid_from) - 1
    for i in range(index, -1, -1):
        if periods[i].contains(moment):
            return periods[i]
    return None


class PriceCapTable:
    """Regional price caps, looked up by the date they came into force."""

    def __init__(self, caps: Sequence[PriceCapEntry]):
        self.caps = sorted(caps, key=lambda c: c.effective_date)

    def cap_at(self, moment: datetime, unit_type: UnitType) -> float | None:
        """Cap in force at ``moment``, or None if no cap had started yet."""
        index = bisect_right(self.caps, moment, key=lambda c: c.effective_date) - 1
        if index < 0:
            return None
        return self.caps[index].for_unit(unit_type)


class RateMatcher:
    """Resolves the unit rate for consumption intervals visited in order."""

    def __init__(self, rates: Sequence[RatePeriod]):
        self.rates = list(rates)

    def resolve(self, interval: ConsumptionInterval) -> RateResolution:
        raise NotImplementedError

    def _matched(self, interval: ConsumptionInterval, rate: float) -> RateResolution:
        return RateResolution(interval_start=interval.interval_start, rate=rate)

    def _unmatched(self, interval: ConsumptionInterval) -> RateResolution:
        return RateResolution(interval_start=interval.interval_start, rate=None)


class FixedRateMatcher(RateMatcher):
    """Fixed tariffs have a single rate for the whole contract."""

    def resolve(self, interval):
        if not self.rates:
            return self._unmatched(interval)
        return self._matched(interval, self.rates[0].value_inc_vat)


class CappedRateMatcher(RateMatcher):
    """Standard variable tariff, clamped to the price cap in force."""

    def __init__(self, rates, caps: PriceCapTable, unit_type: UnitType):
        super().__init__(rates)
        self.caps = caps
        self.unit_type = unit_type

    def resolve(self, interval):
        period = _latest_starting(self.rates, interval.interval_start)
        if period is None:
            return self._unmatched(interval)

        rate = period.value_inc_vat
        cap = self.caps.cap_at(interval.interval_start, self.unit_type)
        if cap is not None and rate > cap:
            rate = cap
        return self._matched(interval, rate)


class WindowScanRateMatcher(RateMatcher):
    """Go and Cosy: a few time windows re-issued for each day.

    Windows that closed before the current interval are skipped for good,
    then the first window from the cursor that contains the interval wins.
    """

    def __init__(self, rates):
        super().__init__(rates)
        self._cursor = 0

    def resolve(self, interval):
        moment = interval.interval_start
        while (
            self._cursor < len(self.rates)
            and self.rates[self._cursor].valid_to is not None
            and self.rates[self._cursor].valid_to <= moment
        ):
            self._cursor += 1

        for period in islice(self.rates, self._cursor, None):
            if period.valid_from > moment:
                break
            if period.contains(moment):
                return self._matched(interval, period.value_inc_vat)
        return self._unmatched(interval)


class MergeJoinRateMatcher(RateMatcher):
    """Agile and Tracker: one rate per slot (or per day), joined on timestamp.

    Both series are walked together, so a reading missing from the meter or
    a slot missing from the rate feed only affects that one interval.
    """

    def __init__(self, rates):
        super().__init__(rates)
        self._cursor = 0

    def resolve(self, interval):
        if not self.rates:
            return self._unmatched(interval)

        moment = interval.interval_start
        while self._cursor + 1 < len(self.rates) and self.rates[self._cursor + 1].valid_from <= moment:
            self._cursor += 1

        period = self.rates[self._cursor]
        if period.contains(moment):
            return self._matched(interval, period.value_inc_vat)
        return self._unmatched(interval)


def get_rate_matcher(
    category: TariffCategory | str,
    rates: Sequence[RatePeriod],
    caps: PriceCapTable | None = None,
    unit_type: UnitType = UnitType.ELECTRICITY,
) -> RateMatcher:
    """Build the rate matcher for a tariff category."""
    category = TariffCategory(category)
    rates = filter_payment_method(rates)

    if category is TariffCategory.FIXED:
        return FixedRateMatcher(rates)
    if category is TariffCategory.SVT:
        return CappedRateMatcher(rates, caps or PriceCapTable([]), UnitType(unit_type))
    if category in (TariffCategory.GO, TariffCategory.COSY):
        return WindowScanRateMatcher(rates)
    return MergeJoinRateMatcher(rates)


class StandingChargeMatcher:
    """Resolves one standing charge for each new calendar day."""

    def __init__(self, category: TariffCategory | str, charges: Sequence[StandingChargePeriod], tz: tzinfo):
        self.category = TariffCategory(category)
        self.charges = filter_payment_method(charges)
        self.tz = tz

    def charge_for(self, day: date, aware: bool = True) -> float | None:
        """Standing charge in pence for ``day``, or None if no period covers it."""
        if self.category is TariffCategory.FIXED:
            return self.charges[0].value_inc_vat if self.charges else None

        midnight = start_of_day(day, self.tz if aware else None)
        period = _latest_starting(self.charges, midnight)
        if period is None:
            logger.debug("No standing charge covers %s", day)
            return None
        return period.value_inc_vat
