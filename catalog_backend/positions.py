"""
Position arithmetic for drag-and-drop ordered rows (banners).

Positions are 1-based and contiguous. Functions here only compute the new
values; callers persist them inside a single transaction.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Sequence


def next_position(positions: Iterable[int]) -> int:
    return max(positions, default=0) + 1


def clamp_position(position: int, count: int) -> int:
    return max(1, min(position, count))


def shift_after_delete(
    rows: Iterable[tuple[str, int]], deleted_position: int
) -> dict[str, int]:
    """Rows behind the deleted one move up by one to close the gap."""
    return {
        row_id: position - 1
        for row_id, position in rows
        if position > deleted_position
    }


def move(
    rows: Sequence[tuple[str, int]], row_id: str, new_position: int
) -> dict[str, int]:
    """
    Move ``row_id`` to ``new_position``.

    Moving down shifts the rows in (old, new] up by one, moving up shifts the
    rows in [new, old) down by one. Only rows whose position changes are
    returned. ``rows`` are renumbered 1..n first, so gaps left by older data
    are closed as a side effect.
    """
    ordered = [rid for rid, _ in sorted(rows, key=lambda r: r[1])]
    if row_id not in ordered:
        raise KeyError(row_id)
    target = clamp_position(new_position, len(ordered))
    ordered.remove(row_id)
    ordered.insert(target - 1, row_id)
    current = dict(rows)
    return {
        rid: index
        for index, rid in enumerate(ordered, start=1)
        if current[rid] != index
    }


def assign_missing(
    rows: Iterable[tuple[str, int, datetime]],
) -> list[tuple[str, int]]:
    """
    Give rows with a non-positive position a slot after the positioned ones,
    in creation order, and renumber everything 1..n.
    """
    rows = list(rows)
    positioned = sorted(
        (r for r in rows if r[1] > 0), key=lambda r: (r[1], r[2])
    )
    unpositioned = sorted((r for r in rows if r[1] <= 0), key=lambda r: r[2])
    return [
        (row_id, index)
        for index, (row_id, _, _) in enumerate(positioned + unpositioned, start=1)
    ]
