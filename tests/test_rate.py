"""Unit tests for Rate parsing and validation."""

from datetime import timedelta

import pytest

from rate_governor.adapters.rate_limit.base import Rate


@pytest.mark.parametrize(
    ("formatted", "limit", "period"),
    [
        ("100-M", 100, timedelta(minutes=1)),
        ("10-H", 10, timedelta(hours=1)),
        ("60-m", 60, timedelta(minutes=1)),
        ("5-S", 5, timedelta(seconds=1)),
        ("1000-D", 1000, timedelta(days=1)),
        (" 1 - h ", 1, timedelta(hours=1)),
    ],
)
def test_from_formatted(formatted: str, limit: int, period: timedelta) -> None:
    rate = Rate.from_formatted(formatted)

    assert rate.limit == limit
    assert rate.period == period


@pytest.mark.parametrize("formatted", ["", "100", "M-100", "100-W", "-5-M", "0-M", "1.5-H"])
def test_from_formatted_rejects_malformed(formatted: str) -> None:
    with pytest.raises(ValueError):
        Rate.from_formatted(formatted)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"limit": 0, "period": timedelta(seconds=60)},
        {"limit": 1, "period": timedelta(0)},
        {"limit": 1, "period": timedelta(seconds=-1)},
    ],
)
def test_invalid_constructor_args(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        Rate(**kwargs)


def test_rate_is_immutable() -> None:
    rate = Rate.from_formatted("10-H")

    with pytest.raises(AttributeError):
        rate.limit = 20  # type: ignore[misc]


@pytest.mark.parametrize(
    ("period", "label"),
    [
        (timedelta(minutes=1), "minute"),
        (timedelta(hours=1), "hour"),
        (timedelta(days=1), "day"),
        (timedelta(seconds=30), "30 seconds"),
        (timedelta(seconds=1.5), "1.5 seconds"),
    ],
)
def test_period_label(period: timedelta, label: str) -> None:
    assert Rate(limit=1, period=period).period_label == label
