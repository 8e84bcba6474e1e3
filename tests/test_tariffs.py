from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from billing.models import (
    ConsumptionInterval,
    PriceCapEntry,
    RatePeriod,
    StandingChargePeriod,
    TariffCategory,
    UnitType,
)
from billing.tariffs import (
    CappedRateMatcher,
    FixedRateMatcher,
    MergeJoinRateMatcher,
    PriceCapTable,
    StandingChargeMatcher,
    WindowScanRateMatcher,
    billing_day,
    expected_samples,
    get_rate_matcher,
    localise,
)

UTC = timezone.utc
LONDON = ZoneInfo("Europe/London")


def at(day, hour=0, minute=0):
    return datetime(2024, 1, day, hour, minute, tzinfo=UTC)


def slot(start, kwh=1.0):
    return ConsumptionInterval(kwh, start, start + timedelta(minutes=30))


def go_rates(days, skip_nights=()):
    """Go-style windows: 9p from 00:30 to 04:30, 30p otherwise."""
    rates = [RatePeriod(30.0, datetime(2023, 12, 31, 4, 30, tzinfo=UTC), at(1, 0, 30))]
    for day in days:
        if day not in skip_nights:
            rates.append(RatePeriod(9.0, at(day, 0, 30), at(day, 4, 30)))
        rates.append(RatePeriod(30.0, at(day, 4, 30), at(day + 1, 0, 30)))
    return rates


def test_get_rate_matcher_picks_strategy():
    rates = [RatePeriod(20.0, at(1))]
    assert isinstance(get_rate_matcher("Fixed", rates), FixedRateMatcher)
    assert isinstance(get_rate_matcher(TariffCategory.SVT, rates), CappedRateMatcher)
    assert isinstance(get_rate_matcher("Go", rates), WindowScanRateMatcher)
    assert isinstance(get_rate_matcher("Cosy", rates), WindowScanRateMatcher)
    assert isinstance(get_rate_matcher("Agile", rates), MergeJoinRateMatcher)
    assert isinstance(get_rate_matcher("Tracker", rates), MergeJoinRateMatcher)


def test_fixed_uses_first_rate():
    matcher = get_rate_matcher("Fixed", [RatePeriod(22.0, at(5)), RatePeriod(30.0, at(10))])
    # Fixed ignores validity dates altogether
    assert matcher.resolve(slot(at(1))).rate == 22.0
    assert matcher.resolve(slot(at(20))).rate == 22.0


def test_fixed_without_rates_is_unmatched():
    resolution = get_rate_matcher("Fixed", []).resolve(slot(at(1)))
    assert not resolution.matched
    assert resolution.rate is None


def test_capped_matcher():
    rates = [RatePeriod(35.0, at(1), at(10)), RatePeriod(25.0, at(10))]
    caps = PriceCapTable([PriceCapEntry(at(1), electricity=28.0, gas=7.0)])
    matcher = get_rate_matcher("SVT", rates, caps, UnitType.ELECTRICITY)

    assert matcher.resolve(slot(at(5))).rate == 28.0
    assert matcher.resolve(slot(at(12))).rate == 25.0
    assert not matcher.resolve(slot(datetime(2023, 12, 31, tzinfo=UTC))).matched


def test_period_end_is_exclusive():
    rates = [RatePeriod(35.0, at(1), at(10)), RatePeriod(25.0, at(10))]
    matcher = get_rate_matcher("SVT", rates)
    assert matcher.resolve(slot(at(10))).rate == 25.0
    assert matcher.resolve(slot(at(9, 23, 30))).rate == 35.0


def test_price_cap_table_lookup():
    caps = PriceCapTable([
        PriceCapEntry(at(15), electricity=25.0, gas=6.0),
        PriceCapEntry(at(1), electricity=30.0, gas=7.0),
    ])
    assert caps.cap_at(datetime(2023, 12, 31, tzinfo=UTC), UnitType.ELECTRICITY) is None
    assert caps.cap_at(at(1), UnitType.ELECTRICITY) == 30.0
    assert caps.cap_at(at(14, 23), UnitType.GAS) == 7.0
    assert caps.cap_at(at(20), UnitType.GAS) == 6.0


def test_window_scan_for_go():
    matcher = get_rate_matcher("Go", go_rates([1, 2]))
    prices = [matcher.resolve(slot(at(1) + timedelta(minutes=30 * i))).rate for i in range(96)]

    assert prices[0] == 30.0  # 00:00 is still yesterday's day window
    assert prices[1:9] == [9.0] * 8
    assert prices[9] == 30.0
    assert prices[49:57] == [9.0] * 8
    assert sum(prices) == 2 * (8 * 9.0 + 40 * 30.0)


def test_window_scan_recovers_after_missing_window():
    """A missing window leaves its slots unmatched without losing later days."""
    matcher = get_rate_matcher("Cosy", go_rates([1, 2], skip_nights={1}))
    resolutions = [matcher.resolve(slot(at(1) + timedelta(minutes=30 * i))) for i in range(96)]

    unmatched = [r.interval_start for r in resolutions if not r.matched]
    assert unmatched == [at(1, 0, 30) + timedelta(minutes=30 * i) for i in range(8)]
    assert [r.rate for r in resolutions[49:57]] == [9.0] * 8


def test_merge_join_with_gaps_on_both_sides():
    rates = [RatePeriod(float(i), at(1) + timedelta(minutes=30 * i), at(1) + timedelta(minutes=30 * (i + 1)))
             for i in range(10) if i != 6]
    matcher = get_rate_matcher("Agile", rates)

    readings = [i for i in range(10) if i != 3]
    resolved = {i: matcher.resolve(slot(at(1) + timedelta(minutes=30 * i))).rate for i in readings}

    assert resolved == {0: 0.0, 1: 1.0, 2: 2.0, 4: 4.0, 5: 5.0, 6: None, 7: 7.0, 8: 8.0, 9: 9.0}


def test_merge_join_daily_tracker_rates():
    rates = [RatePeriod(20.0 + d, at(d), at(d + 1)) for d in range(1, 6)]
    matcher = get_rate_matcher("Tracker", rates)
    assert [matcher.resolve(slot(at(d))).rate for d in (1, 3, 5)] == [21.0, 23.0, 25.0]
    assert not matcher.resolve(slot(at(6))).matched


def test_rate_matchers_skip_non_direct_debit():
    rates = [
        RatePeriod(50.0, at(1), at(2), payment_method="NON_DIRECT_DEBIT"),
        RatePeriod(20.0, at(1), at(2), payment_method="DIRECT_DEBIT"),
    ]
    for category in TariffCategory:
        assert get_rate_matcher(category, rates).resolve(slot(at(1))).rate == 20.0


def test_standing_charge_matcher():
    charges = [
        StandingChargePeriod(45.0, at(1), at(3)),
        StandingChargePeriod(55.0, at(3)),
    ]
    matcher = StandingChargeMatcher("SVT", charges, LONDON)
    assert matcher.charge_for(date(2024, 1, 2)) == 45.0
    assert matcher.charge_for(date(2024, 1, 3)) == 55.0
    assert matcher.charge_for(date(2023, 12, 31)) is None


def test_fixed_standing_charge_uses_first_period():
    charges = [StandingChargePeriod(45.0, at(10)), StandingChargePeriod(55.0, at(20))]
    matcher = StandingChargeMatcher("Fixed", charges, LONDON)
    assert matcher.charge_for(date(2024, 1, 1)) == 45.0


def test_standing_charge_with_naive_timestamps():
    charges = [StandingChargePeriod(45.0, datetime(2024, 1, 1))]
    matcher = StandingChargeMatcher("Agile", charges, LONDON)
    assert matcher.charge_for(date(2024, 1, 2), aware=False) == 45.0


def test_billing_day_in_local_time():
    # 23:30 UTC in summer is already the next day in London
    assert billing_day(datetime(2024, 6, 1, 23, 30, tzinfo=UTC), LONDON) == date(2024, 6, 2)
    assert billing_day(datetime(2024, 1, 1, 23, 30, tzinfo=UTC), LONDON) == date(2024, 1, 1)
    assert billing_day(datetime(2024, 6, 1, 23, 30), LONDON) == date(2024, 6, 1)


def test_expected_samples():
    assert expected_samples(TariffCategory.AGILE) == 365 * 48
    assert expected_samples(TariffCategory.GO) == 365 * 48
    assert expected_samples(TariffCategory.SVT) == 365
    assert expected_samples("Tracker") == 365


def test_earlier_open_ended_period_resumes_after_overlap():
    charges = [
        StandingChargePeriod(45.0, at(1)),
        StandingChargePeriod(60.0, at(3), at(5)),
    ]
    matcher = StandingChargeMatcher("SVT", charges, UTC)
    assert matcher.charge_for(date(2024, 1, 2)) == 45.0
    assert matcher.charge_for(date(2024, 1, 4)) == 60.0
    assert matcher.charge_for(date(2024, 1, 6)) == 45.0

    rates = [RatePeriod(30.0, at(1)), RatePeriod(20.0, at(3), at(5))]
    svt = get_rate_matcher("SVT", rates)
    assert svt.resolve(slot(at(4))).rate == 20.0
    assert svt.resolve(slot(at(6))).rate == 30.0


def test_localise():
    assert localise(datetime(2024, 6, 1), LONDON) == datetime(2024, 6, 1, tzinfo=LONDON)
    assert localise(at(1), LONDON).tzinfo is UTC
    assert localise(None, LONDON) is None
