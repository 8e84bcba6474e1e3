"""Tests for the Octopus API response parser."""

import json
from datetime import datetime, timezone

import pytest
from billing.collectors import octopus
from billing.exceptions import ProviderFormatError

UTC = timezone.utc


def test_parse_consumption_sorts_oldest_first():
    """The API returns newest first; intervals come back in time order."""
    data = {
        "count": 2,
        "next": None,
        "results": [
            {"consumption": 0.25, "interval_start": "2024-01-01T00:30:00Z", "interval_end": "2024-01-01T01:00:00Z"},
            {"consumption": 0.5, "interval_start": "2024-01-01T00:00:00Z", "interval_end": "2024-01-01T00:30:00Z"},
        ],
    }

    intervals = octopus.parse_consumption(data)

    assert [i.consumption for i in intervals] == [0.5, 0.25]
    assert intervals[0].interval_start == datetime(2024, 1, 1, 0, 0, tzinfo=UTC)
    assert intervals[1].interval_end == datetime(2024, 1, 1, 1, 0, tzinfo=UTC)


def test_parse_rates_with_open_end_and_payment_method():
    data = {
        "results": [
            {"value_exc_vat": 23.0, "value_inc_vat": 24.15, "valid_from": "2024-04-01T00:00:00Z",
             "valid_to": None, "payment_method": "DIRECT_DEBIT"},
            {"value_exc_vat": 27.0, "value_inc_vat": 28.35, "valid_from": "2024-01-01T00:00:00Z",
             "valid_to": "2024-04-01T00:00:00Z", "payment_method": None},
        ]
    }

    rates = octopus.parse_rates(data)

    assert [r.value_inc_vat for r in rates] == [28.35, 24.15]
    assert rates[0].valid_to == datetime(2024, 4, 1, tzinfo=UTC)
    assert rates[1].valid_to is None
    assert rates[1].payment_method == "DIRECT_DEBIT"


def test_parse_standing_charges_accepts_bare_list():
    charges = octopus.parse_standing_charges(
        [{"value_inc_vat": 47.85, "valid_from": "2023-10-01T00:00:00+01:00"}]
    )
    assert charges[0].value_inc_vat == 47.85
    assert charges[0].valid_from == datetime(2023, 9, 30, 23, 0, tzinfo=UTC)


def test_invalid_rows_raise():
    with pytest.raises(ProviderFormatError, match="Invalid RatePeriod"):
        octopus.parse_rates({"results": [{"valid_from": "2024-01-01T00:00:00Z"}]})

    with pytest.raises(ProviderFormatError, match="list of results"):
        octopus.parse_consumption({"detail": "Authentication credentials were not provided."})


def test_load_consumption_from_json_and_csv(tmp_path):
    json_path = tmp_path / "consumption.json"
    json_path.write_text(json.dumps({"results": [
        {"consumption": 1.5, "interval_start": "2024-01-01T00:00:00Z", "interval_end": "2024-01-01T00:30:00Z"},
    ]}))
    csv_path = tmp_path / "consumption.csv"
    csv_path.write_text(
        "interval_start,interval_end,consumption_kwh\n"
        "2024-01-01T00:30:00+00:00,2024-01-01T01:00:00+00:00,0.75\n"
        "2024-01-01T00:00:00+00:00,2024-01-01T00:30:00+00:00,1.25\n"
    )

    from_json = octopus.load_consumption(json_path)
    from_csv = octopus.load_consumption(csv_path)

    assert from_json[0].consumption == 1.5
    assert [i.consumption for i in from_csv] == [1.25, 0.75]


def test_load_invalid_json(tmp_path):
    path = tmp_path / "rates.json"
    path.write_text("<html>Bad gateway</html>")
    with pytest.raises(ProviderFormatError, match="not valid JSON"):
        octopus.load_rates(path)
