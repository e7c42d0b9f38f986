from __future__ import annotations

import pandas as pd
import pytest

from adsb_replay.timing import compute_delay_ms, epoch_ms, parse_record_time, time_of_day_ms

from helpers import utc


def test_naive_timestamps_are_read_as_utc() -> None:
    ts = parse_record_time("2025-11-01 00:00:04")
    assert ts == utc("2025-11-01 00:00:04")
    assert str(ts.tz) == "UTC"


def test_offset_timestamps_are_converted_to_utc() -> None:
    assert parse_record_time("2025-11-01T02:00:04+02:00") == utc("2025-11-01 00:00:04")


@pytest.mark.parametrize("value", [None, "", "   ", "not-a-date", "now", "12:30", "12:30:00", "2025-13-45 99:00:00"])
def test_unparseable_values_yield_none(value) -> None:
    assert parse_record_time(value) is None


def test_time_of_day_discards_the_date() -> None:
    assert time_of_day_ms(utc("2025-11-01 00:00:04")) == 4000.0
    assert time_of_day_ms(utc("1999-01-31 01:02:03.250")) == 3_723_250.0


def test_time_of_day_in_other_zone() -> None:
    # 2025-07-01 is daylight time in Paris (UTC+2).
    assert time_of_day_ms(utc("2025-07-01 22:30:00"), "Europe/Paris") == 30 * 60 * 1000.0


def test_time_of_day_survives_midnight_dst_gap() -> None:
    # Santiago skips 00:00-01:00 local on 2024-09-08; midnight does not exist.
    assert time_of_day_ms(utc("2024-09-08 16:00:00"), "America/Santiago") == 13 * 3_600_000.0


def test_time_of_day_is_wall_clock_on_dst_change_day() -> None:
    noon = pd.Timestamp("2025-11-02 12:00", tz="America/New_York")
    assert time_of_day_ms(noon, "America/New_York") == 12 * 3_600_000.0


def test_delay_is_gap_divided_by_speed() -> None:
    prev = utc("2025-11-01 00:00:04")
    cur = utc("2025-11-01 00:00:09")
    assert compute_delay_ms(cur, prev, 1.0, 10_000) == 5000.0
    assert compute_delay_ms(cur, prev, 2.0, 10_000) == 2500.0
    assert compute_delay_ms(cur, prev, 0.5, None) == 10_000.0


def test_delay_is_capped_and_never_negative() -> None:
    prev = utc("2025-11-01 00:00:04")
    assert compute_delay_ms(utc("2025-11-01 00:00:09"), prev, 1.0, 1000) == 1000.0
    assert compute_delay_ms(utc("2025-11-01 00:00:01"), prev, 1.0, 1000) == 0.0
    assert compute_delay_ms(prev, prev, 3.0, None) == 0.0


def test_epoch_ms() -> None:
    assert epoch_ms(pd.Timestamp("1970-01-01 00:00:01.5", tz="UTC")) == 1500
