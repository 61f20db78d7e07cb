from datetime import datetime, timedelta, timezone, UTC
from zoneinfo import ZoneInfo

import pytest

from src.services.tracking_id import (
    current_date_key,
    format_tracking_id,
    parse_tracking_id,
)


@pytest.mark.unit
def test_format_pads_counter_to_four_digits():
    assert format_tracking_id("SK", "20251031", 1) == "SK-20251031-0001"
    assert format_tracking_id("SK", "20251031", 42) == "SK-20251031-0042"
    assert format_tracking_id("SK", "20251031", 9999) == "SK-20251031-9999"


@pytest.mark.unit
def test_format_widens_past_9999_without_truncation():
    assert format_tracking_id("SK", "20251031", 10000) == "SK-20251031-10000"
    assert format_tracking_id("SK", "20251031", 123456) == "SK-20251031-123456"


@pytest.mark.unit
@pytest.mark.parametrize("counter", [0, -1])
def test_format_rejects_non_positive_counter(counter):
    with pytest.raises(ValueError):
        format_tracking_id("SK", "20251031", counter)


@pytest.mark.unit
def test_parse_round_trips_parts():
    parts = parse_tracking_id("SK-20251031-0007")
    assert parts.prefix == "SK"
    assert parts.date_key == "20251031"
    assert parts.counter == 7
    assert parse_tracking_id("SK-20251031-10000").counter == 10000


@pytest.mark.unit
@pytest.mark.parametrize("value", [
    "",
    "SK-20251031-001",      # counter too short
    "SK-2025103-0001",      # date too short
    "sk-20251031-0001",     # lowercase prefix
    "SK-20251331-0001",     # month 13
    "SK-20251031-0000",     # counter must be >= 1
    "SK_20251031_0001",
    "SK-20251031-0001 ",
])
def test_parse_rejects_malformed(value):
    with pytest.raises(ValueError):
        parse_tracking_id(value)


@pytest.mark.unit
def test_date_key_defaults_to_utc():
    now = datetime(2025, 10, 31, 23, 59, 59, tzinfo=UTC)
    assert current_date_key(now) == "20251031"
    assert current_date_key(now + timedelta(seconds=1)) == "20251101"


@pytest.mark.unit
def test_date_key_treats_naive_datetime_as_utc():
    assert current_date_key(datetime(2025, 10, 31, 23, 30)) == "20251031"


@pytest.mark.unit
def test_date_key_uses_configured_timezone():
    now = datetime(2025, 10, 31, 20, 0, tzinfo=UTC)
    assert current_date_key(now, ZoneInfo("Asia/Kolkata")) == "20251101"
    assert current_date_key(now, ZoneInfo("America/Los_Angeles")) == "20251031"
    # Offset-aware input in another zone is converted, not reinterpreted
    ist = datetime(2025, 11, 1, 1, 0, tzinfo=timezone(timedelta(hours=5, minutes=30)))
    assert current_date_key(ist) == "20251031"
