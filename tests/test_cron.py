from __future__ import annotations

from datetime import datetime, timezone

import pytest

from scheduler.cron import is_valid_field, next_fire_time, parse_cron

UTC = timezone.utc


def test_expands_steps_ranges_and_names() -> None:
    spec = parse_cron("*/15 8-18/2 * jan,jul mon-fri")
    assert spec.minutes == {0, 15, 30, 45}
    assert spec.hours == {8, 10, 12, 14, 16, 18}
    assert spec.months == {1, 7}
    assert spec.weekdays == {1, 2, 3, 4, 5}
    assert not spec.dom_restricted
    assert spec.dow_restricted


def test_weekday_seven_is_sunday() -> None:
    assert parse_cron("0 0 * * 7").weekdays == {0}


@pytest.mark.parametrize(
    "expr",
    ["* * * *", "60 * * * *", "* 24 * * *", "* * 0 * *", "* * * 13 *", "*/0 * * * *", "5-1 * * * *", "a * * * *"],
)
def test_invalid_expressions(expr: str) -> None:
    with pytest.raises(ValueError):
        parse_cron(expr)


def test_next_fire_is_strictly_after() -> None:
    after = datetime(2030, 6, 1, 12, 10, tzinfo=UTC)
    assert next_fire_time("30 12 * * *", after) == datetime(2030, 6, 1, 12, 30, tzinfo=UTC)

    at_fire = datetime(2030, 6, 1, 12, 30, 0, tzinfo=UTC)
    assert next_fire_time("30 12 * * *", at_fire) == datetime(2030, 6, 2, 12, 30, tzinfo=UTC)


def test_next_fire_rolls_over_year() -> None:
    after = datetime(2030, 12, 31, 23, 59, tzinfo=UTC)
    assert next_fire_time("0 0 1 1 *", after) == datetime(2031, 1, 1, 0, 0, tzinfo=UTC)


def test_next_fire_in_local_zone() -> None:
    after = datetime(2030, 6, 1, 0, 0, tzinfo=UTC)
    fire = next_fire_time("0 9 * * *", after, "Europe/Berlin")
    assert fire.astimezone(UTC) == datetime(2030, 6, 1, 7, 0, tzinfo=UTC)


def test_day_of_month_or_day_of_week() -> None:
    # 2030-09-13 is a Friday, 2030-09-06 a Friday, 2030-10-13 a Sunday
    spec = parse_cron("0 0 13 * 5")
    assert spec.matches(datetime(2030, 9, 6, 0, 0))
    assert spec.matches(datetime(2030, 10, 13, 0, 0))
    assert not spec.matches(datetime(2030, 9, 7, 0, 0))


def test_impossible_date_never_fires() -> None:
    with pytest.raises(ValueError, match="never fires"):
        next_fire_time("0 0 30 2 *", datetime(2030, 1, 1, tzinfo=UTC))


def test_single_field_check() -> None:
    assert is_valid_field("*/5", 0)
    assert is_valid_field("mon-fri", 4)
    assert not is_valid_field("24", 1)
    assert not is_valid_field("jan", 0)
