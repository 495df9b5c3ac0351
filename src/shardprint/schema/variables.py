"""
Variable schema for printed location data.

This module defines the typed vocabulary shared by every pipeline stage:

- `ValueKind`      : the closed set of value kinds a variable can hold
- `VariableSpec`   : one requested variable (group, name, channels, levels)
- `GatheredArray`  : the gathered, process-wide values behind one printable row
- missing-value sentinels per kind

Design principles
-----------------
- Immutable dataclasses; built once per request and never mutated
- Kind dispatch goes through explicit per-kind tables, so an unknown kind
  fails loudly with `UnsupportedKindError` instead of falling through
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np

from shardprint.errors import UnsupportedKindError


# ---------------------------------------------------------------------------
# Value kinds
# ---------------------------------------------------------------------------


class ValueKind(str, Enum):
    INTEGER = "integer"
    FLOAT = "float"
    STRING = "string"
    DATETIME = "datetime"
    BOOL = "bool"

    @classmethod
    def parse(cls, name: Any) -> "ValueKind":
        """
        Resolve a kind from its value or a common alias.

        Raises
        ------
        UnsupportedKindError
            If `name` does not name one of the five kinds.
        """
        if isinstance(name, ValueKind):
            return name
        kind = _KIND_ALIASES.get(str(name).strip().lower())
        if kind is None:
            raise UnsupportedKindError(f"Invalid variable type for printing: {name!r}")
        return kind


_KIND_ALIASES: Dict[str, ValueKind] = {
    "integer": ValueKind.INTEGER,
    "int": ValueKind.INTEGER,
    "float": ValueKind.FLOAT,
    "string": ValueKind.STRING,
    "str": ValueKind.STRING,
    "datetime": ValueKind.DATETIME,
    "timestamp": ValueKind.DATETIME,
    "bool": ValueKind.BOOL,
    "boolean": ValueKind.BOOL,
}


# ---------------------------------------------------------------------------
# Missing values
# ---------------------------------------------------------------------------

MISSING_INT = np.int32(np.iinfo(np.int32).min + 5)
MISSING_FLOAT = np.float32(np.finfo(np.float32).min) * np.float32(0.99)
MISSING_STRING = "MISSING*"
MISSING_DATETIME = datetime(9996, 2, 28, 23, 58, 20, tzinfo=timezone.utc)
MISSING_DATETIME_TEXT = "9996-02-28T23:58:20Z"


def missing_value(kind: ValueKind) -> Any:
    """
    Return the missing-value sentinel for `kind`.

    Booleans have no sentinel; a shard that cannot provide a boolean column
    contributes zeros instead.
    """
    if kind is ValueKind.INTEGER:
        return MISSING_INT
    if kind is ValueKind.FLOAT:
        return MISSING_FLOAT
    if kind is ValueKind.STRING:
        return MISSING_STRING
    if kind is ValueKind.DATETIME:
        return MISSING_DATETIME
    if kind is ValueKind.BOOL:
        return 0
    raise UnsupportedKindError(f"Invalid variable type for printing: {kind!r}")


def format_datetime(value: Any) -> str:
    """Render a timestamp as `YYYY-MM-DDTHH:MM:SSZ`; strings pass through."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.strftime("%Y-%m-%dT%H:%M:%SZ")
    return str(value)


# ---------------------------------------------------------------------------
# Variable specs
# ---------------------------------------------------------------------------

MULTI_LEVEL_GROUPS = frozenset({"GeoVaLs", "ObsDiag", "ObsBiasTerm"})


@dataclass(frozen=True)
class VariableSpec:
    """
    A requested variable.

    Attributes
    ----------
    group : str
        Group the variable belongs to, e.g. ``ObsValue`` or ``GeoVaLs``.
    name : str
        Base variable name, without any channel suffix.
    channels : Tuple[int, ...]
        Channel numbers; empty for a scalar variable.
    levels : Tuple[int, ...]
        Sorted, unique level indices (only used by level-resolved groups).
    kind : Optional[ValueKind]
        Declared kind. When None, the kind reported by the store is used.
    """

    group: str
    name: str
    channels: Tuple[int, ...] = ()
    levels: Tuple[int, ...] = ()
    kind: Optional[ValueKind] = None

    def __post_init__(self):
        object.__setattr__(self, "channels", tuple(int(c) for c in self.channels))
        object.__setattr__(self, "levels", tuple(sorted({int(lv) for lv in self.levels})))
        if self.kind is not None:
            object.__setattr__(self, "kind", ValueKind.parse(self.kind))

    @staticmethod
    def from_path(path: str, **kwargs) -> "VariableSpec":
        """Build a spec from a ``group/name`` path."""
        group, sep, name = path.partition("/")
        if not sep or not group or not name:
            raise ValueError(f"Variable '{path}' must be written as 'group/name'")
        return VariableSpec(group=group, name=name, **kwargs)

    @property
    def full_name(self) -> str:
        return f"{self.group}/{self.name}"

    @property
    def is_multi_level(self) -> bool:
        return self.group in MULTI_LEVEL_GROUPS

    @property
    def size(self) -> int:
        """Number of printable channel rows (1 for a scalar)."""
        return len(self.channels) or 1

    def channel_name(self, index: int) -> str:
        if not self.channels:
            return self.name
        return f"{self.name}_{self.channels[index]}"


def key_with_channel(spec: VariableSpec, index: int) -> str:
    """RenderedKey for channel `index` of `spec` (the bare path for a scalar)."""
    return f"{spec.group}/{spec.channel_name(index)}"


def key_at_level(spec: VariableSpec, level: int) -> str:
    """RenderedKey for one level of a level-resolved variable."""
    return f"{spec.full_name} (level {level})"


# ---------------------------------------------------------------------------
# Gathered values
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GatheredArray:
    """
    Process-wide values for one printable row, in gather (rank) order.

    Numeric kinds are held as numpy arrays (int32 / float32, with booleans
    stored as int32 0/1); strings and timestamps as tuples.
    """

    kind: ValueKind
    values: Any = field(repr=False)

    @staticmethod
    def build(kind: ValueKind, values: Sequence[Any]) -> "GatheredArray":
        return GatheredArray(kind=kind, values=coerce_values(kind, values))

    def __len__(self) -> int:
        return len(self.values)

    def is_missing(self, index: int) -> bool:
        value = self.values[index]
        if self.kind is ValueKind.INTEGER:
            return value == MISSING_INT
        if self.kind is ValueKind.FLOAT:
            return value == MISSING_FLOAT
        if self.kind is ValueKind.STRING:
            return value == MISSING_STRING
        if self.kind is ValueKind.DATETIME:
            return format_datetime(value) == MISSING_DATETIME_TEXT
        if self.kind is ValueKind.BOOL:
            return False
        raise UnsupportedKindError(f"Invalid variable type for printing: {self.kind!r}")


def coerce_values(kind: ValueKind, values: Sequence[Any]) -> Any:
    """Convert a local or gathered column to the storage type of `kind`."""
    if kind is ValueKind.INTEGER:
        wide = np.asarray(values, dtype=np.int64).reshape(-1)
        info = np.iinfo(np.int32)
        if wide.size and (wide.min() < info.min or wide.max() > info.max):
            raise OverflowError("integer value out of int32 range")
        return wide.astype(np.int32)
    if kind is ValueKind.FLOAT:
        return np.asarray(values, dtype=np.float32).reshape(-1)
    if kind is ValueKind.BOOL:
        return np.asarray(values, dtype=bool).astype(np.int32).reshape(-1)
    if kind in (ValueKind.STRING, ValueKind.DATETIME):
        return tuple(values)
    raise UnsupportedKindError(f"Invalid variable type for printing: {kind!r}")
