from typing import Any

from shardprint.errors import UnsupportedKindError
from shardprint.schema.variables import ValueKind, format_datetime

MISSING_MARKER = "missing"


def fmt_float(value: Any, precision: int, scientific: bool = False) -> str:
    """
    Fixed-point (``1.500000``) or scientific (``1.500000e+00``) notation.
    """
    v = float(value)
    if scientific:
        return f"{v:.{precision}e}"
    return f"{v:.{precision}f}"


def fmt_value(
    kind: ValueKind,
    value: Any,
    precision: int = 6,
    scientific: bool = False,
) -> str:
    """Format one non-missing value according to its kind."""
    if kind is ValueKind.FLOAT:
        return fmt_float(value, precision, scientific)
    if kind in (ValueKind.INTEGER, ValueKind.BOOL):
        return str(int(value))
    if kind is ValueKind.STRING:
        return str(value)
    if kind is ValueKind.DATETIME:
        return format_datetime(value)
    raise UnsupportedKindError(f"Invalid variable type for printing: {kind!r}")


def fmt_cell(text: str, width: int) -> str:
    """Right-align `text` in a column of `width`; longer text is not cut."""
    return f"{text:>{width}}"
