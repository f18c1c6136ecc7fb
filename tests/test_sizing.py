"""Mini-README: Tests for shirt-size classification against ordered thresholds."""

import pytest

from estimator.sizing import DEFAULT_THRESHOLDS, classify, sorted_thresholds


THRESHOLDS = list(DEFAULT_THRESHOLDS)


@pytest.mark.parametrize(
    ("hours", "expected"),
    [
        (0, "XS"),
        (24, "XS"),
        (39.9, "XS"),
        (40, "S"),
        (79.9, "S"),
        (160, "L"),
        (639.9, "XL"),
        (1000, "XXL"),
    ],
)
def test_classify_uses_inclusive_lower_bounds(hours, expected) -> None:
    assert classify(hours, THRESHOLDS) == expected


def test_classify_is_monotonic_in_hours() -> None:
    order = [label for label, _ in THRESHOLDS]
    sizes = [classify(hours, THRESHOLDS) for hours in range(0, 800, 7)]
    positions = [order.index(size) for size in sizes]
    assert positions == sorted(positions)


def test_empty_thresholds_fall_back_to_xs() -> None:
    assert classify(500, []) == "XS"


def test_unreadable_or_negative_hours_count_as_zero() -> None:
    assert classify(None, THRESHOLDS) == "XS"
    assert classify("abc", THRESHOLDS) == "XS"
    assert classify(-25, THRESHOLDS) == "XS"


def test_below_smallest_threshold_takes_smallest_label() -> None:
    thresholds = [("S", 10), ("M", 20)]
    assert classify(5, thresholds) == "S"


def test_sorted_thresholds_accepts_rows_dicts_and_pairs() -> None:
    class Row:
        def __init__(self, size, threshold_hours):
            self.size = size
            self.threshold_hours = threshold_hours

    rows = [Row("M", 80), {"size": "XS", "threshold_hours": 0}, ("S", 40)]
    assert sorted_thresholds(rows) == [("XS", 0.0), ("S", 40.0), ("M", 80.0)]


def test_custom_thresholds_after_bulk_edit() -> None:
    thresholds = sorted_thresholds([("XS", 0), ("S", 50), ("M", 80)])
    assert classify(40, thresholds) == "XS"
    assert classify(50, thresholds) == "S"


def test_scan_stops_at_first_unmet_threshold() -> None:
    """Thresholds are taken in the order given; a later, lower row is never reached."""
    assert classify(50, [("XS", 0), ("L", 160), ("S", 40)]) == "XS"
    assert classify(50, sorted_thresholds([("XS", 0), ("L", 160), ("S", 40)])) == "S"
