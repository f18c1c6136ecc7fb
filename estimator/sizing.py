"""Shirt-size classification.

Maps a total number of estimated hours onto a coarse size label using an
ordered threshold table. Pure and side-effect free so the same function backs
persisted initiative sizes, previews and the recompute CLI.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

DEFAULT_SIZE = "XS"

DEFAULT_THRESHOLDS: tuple[tuple[str, float], ...] = (
    ("XS", 0),
    ("S", 40),
    ("M", 80),
    ("L", 160),
    ("XL", 320),
    ("XXL", 640),
)


def _as_hours(value: object) -> float:
    try:
        hours = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0.0
    if hours != hours or hours < 0:
        return 0.0
    return hours


def sorted_thresholds(rows: Iterable[object]) -> list[tuple[str, float]]:
    """Normalize threshold rows into `(label, hours)` pairs sorted ascending.

    Accepts `(label, hours)` pairs, mappings with `size`/`threshold_hours` keys,
    or objects exposing those attributes (ORM rows).
    """
    pairs: list[tuple[str, float]] = []
    for row in rows:
        if isinstance(row, tuple):
            label, hours = row
        elif isinstance(row, dict):
            label, hours = row.get("size"), row.get("threshold_hours")
        else:
            label, hours = getattr(row, "size", None), getattr(row, "threshold_hours", None)
        if not label:
            continue
        pairs.append((str(label), _as_hours(hours)))
    return sorted(pairs, key=lambda pair: pair[1])


def classify(total_hours: object, thresholds: Sequence[tuple[str, float]]) -> str:
    """Return the label of the largest threshold not exceeding `total_hours`.

    `thresholds` must already be in ascending order. The scan stops at the
    first threshold the total does not meet. The boundary is inclusive.
    """
    if not thresholds:
        return DEFAULT_SIZE

    hours = _as_hours(total_hours)
    size = thresholds[0][0]
    for label, threshold_hours in thresholds:
        if hours >= threshold_hours:
            size = label
        else:
            break
    return size
