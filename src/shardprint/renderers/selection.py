"""
Location selection and pagination.

Selection keeps the ordered positions whose location number lies in the
requested window and whose gathered selection flag is set. Pagination then
cuts the kept positions into table blocks narrow enough for the output width.
"""

from typing import List, Optional, Sequence, Tuple

from shardprint.errors import InvalidRangeError
from shardprint.gather.reconciler import OrderedPosition

# Each value column is followed by " | ".
SEPARATOR_WIDTH = 3


def clamp_window(locmin: int, locmax: int, total: int) -> Tuple[int, Optional[int]]:
    """
    Resolve the requested location window.

    - `locmin` is clamped into ``[0, total - 1]``.
    - A zero `locmax` means no upper limit.

    Returns
    -------
    Tuple[int, Optional[int]]
        ``(lower, upper)``; `upper` is exclusive, or None when unbounded.

    Raises
    ------
    InvalidRangeError
        If the clamped minimum exceeds the maximum.
    """
    lower = min(int(locmin), total - 1) if total > 0 else 0
    lower = max(lower, 0)
    if locmax == 0:
        return lower, None
    upper = int(locmax)
    if lower > upper:
        raise InvalidRangeError(
            f"Minimum location ({lower}) cannot be larger than maximum location ({upper})"
        )
    return lower, upper


def select_positions(
    positions: Sequence[OrderedPosition],
    apply: Sequence[bool],
    locmin: int,
    locmax: int,
    total: int,
) -> List[OrderedPosition]:
    """
    Keep positions inside ``[locmin, locmax)`` whose selection flag is set.
    """
    lower, upper = clamp_window(locmin, locmax, total)
    return [
        p
        for p in positions
        if p.location >= lower
        and (upper is None or p.location < upper)
        and bool(apply[p.index])
    ]


def locations_per_page(max_text_width: int, name_width: int, column_width: int) -> int:
    """Number of value columns that fit next to the name column (at least 1)."""
    return max((max_text_width - name_width) // (column_width + SEPARATOR_WIDTH), 1)


def paginate(
    positions: Sequence[OrderedPosition],
    per_page: int,
) -> List[List[OrderedPosition]]:
    """Split positions into consecutive pages of `per_page` entries."""
    if per_page <= 0:
        raise ValueError(f"per_page must be > 0, got {per_page}")
    return [list(positions[i : i + per_page]) for i in range(0, len(positions), per_page)]
