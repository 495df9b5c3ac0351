"""
Variable materialization (every rank).

Fetches each requested variable's local columns from the value store, gathers
them across ranks and returns a table keyed by RenderedKey.

Collective contract
-------------------
The sequence of gathers depends only on the shared list of `VariableSpec`s
and on data that has already been gathered, never on local data:

- one probe gather per variable: ``(present, kind, level_count)`` from every rank
- if the variable is present on at least one rank, one gather per channel (or
  per in-range level) of ``(ok, local_column)``

A rank whose local fetch fails still takes part in the gather, contributing
missing values for each of its locations, so every rank issues the same
calls in the same order. Notices are built from gathered data only and are
therefore identical on every rank.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from shardprint.errors import NotPresentError, UnsupportedKindError
from shardprint.loggers.error_log import get_error_logger
from shardprint.schema.variables import (
    GatheredArray,
    ValueKind,
    VariableSpec,
    coerce_values,
    key_at_level,
    key_with_channel,
    missing_value,
)
from shardprint.store.base_store import ValueStore
from shardprint.transport.distributed import CollectiveChannel

NOT_PRESENT = "not present in filter data"


@dataclass(frozen=True)
class MaterializedData:
    """
    Gathered rows for one render invocation.

    Attributes
    ----------
    arrays : Dict[str, GatheredArray]
        RenderedKey -> process-wide values, in gather order.
    notices : Tuple[str, ...]
        One line per variable, channel or level that could not be printed.
    """

    arrays: Dict[str, GatheredArray] = field(default_factory=dict)
    notices: Tuple[str, ...] = ()

    def __contains__(self, key: str) -> bool:
        return key in self.arrays

    def get(self, key: str) -> Optional[GatheredArray]:
        return self.arrays.get(key)


def rendered_keys(spec: VariableSpec) -> List[str]:
    """Every RenderedKey a spec can produce."""
    keys = [key_with_channel(spec, i) for i in range(spec.size)]
    if spec.is_multi_level:
        keys.extend(key_at_level(spec, level) for level in spec.levels)
    return keys


def check_unique_keys(specs: Sequence[VariableSpec]) -> None:
    """
    Raise ValueError if two requested rows would share a RenderedKey.
    """
    seen: Dict[str, VariableSpec] = {}
    for spec in specs:
        for key in rendered_keys(spec):
            if key in seen and seen[key] is not spec:
                raise ValueError(f"Variable row '{key}' is requested more than once")
            seen[key] = spec


class VariableMaterializer:
    """
    Populates RenderedKey -> GatheredArray for a list of requested variables.

    Responsibilities:
    - Probe every rank for the variable's presence, kind and level count
    - Dispatch on kind and shape (scalar / channels / levels)
    - Gather local columns and record a notice for anything unavailable

    Per-variable failures (absent variable, channel or level) never abort
    sibling work. An unrecognised kind raises `UnsupportedKindError` on every
    rank at the same point.
    """

    def __init__(
        self,
        store: ValueStore,
        channel: CollectiveChannel,
        skip_derived: bool = False,
    ):
        self._store = store
        self._channel = channel
        self._skip_derived = bool(skip_derived)
        self.logger = get_error_logger("VariableMaterializer")

    def materialize(self, specs: Sequence[VariableSpec]) -> MaterializedData:
        check_unique_keys(specs)
        arrays: Dict[str, GatheredArray] = {}
        notices: List[str] = []

        for spec in specs:
            probes = self._channel.gather_per_rank(self._probe(spec))
            present_ranks = [r for r, probe in enumerate(probes) if probe[0]]
            if not present_ranks:
                notices.append(f"{spec.full_name} {NOT_PRESENT}")
                continue

            if spec.kind is not None:
                kind = spec.kind
            else:
                kind = ValueKind.parse(probes[present_ranks[0]][1])

            if spec.is_multi_level and kind is ValueKind.FLOAT:
                nlevs = max(probes[r][2] for r in present_ranks)
                self._materialize_levels(spec, nlevs, arrays, notices)
            else:
                self._materialize_channels(spec, kind, arrays, notices)

        return MaterializedData(arrays=arrays, notices=tuple(notices))

    def _probe(self, spec: VariableSpec) -> Tuple[bool, Optional[str], int]:
        if not self._store.has_variable(spec, skip_derived=self._skip_derived):
            return False, None, 0
        kind = self._store.kind(spec)
        kind_name = kind.value if isinstance(kind, ValueKind) else str(kind)
        return True, kind_name, int(self._store.level_count(spec))

    def _materialize_channels(
        self,
        spec: VariableSpec,
        kind: ValueKind,
        arrays: Dict[str, GatheredArray],
        notices: List[str],
    ) -> None:
        for ich in range(spec.size):
            key = key_with_channel(spec, ich)
            self._gather_column(spec, kind, ich, key, arrays, notices)

    def _materialize_levels(
        self,
        spec: VariableSpec,
        nlevs: int,
        arrays: Dict[str, GatheredArray],
        notices: List[str],
    ) -> None:
        for level in spec.levels:
            key = key_at_level(spec, level)
            # Level range comes from gathered probes, so every rank skips alike.
            if level < 0 or level >= nlevs:
                notices.append(f"{key} {NOT_PRESENT}")
                continue
            self._gather_column(spec, ValueKind.FLOAT, level, key, arrays, notices)

    def _gather_column(
        self,
        spec: VariableSpec,
        kind: ValueKind,
        index: int,
        key: str,
        arrays: Dict[str, GatheredArray],
        notices: List[str],
    ) -> None:
        ok, local = self._fetch(spec, kind, index)
        parts = self._channel.gather_per_rank((ok, local))

        missing_ranks = [r for r, (part_ok, _) in enumerate(parts) if not part_ok]
        if len(missing_ranks) == len(parts):
            notices.append(f"{key} {NOT_PRESENT}")
            return
        if missing_ranks:
            notices.append(f"{key} {NOT_PRESENT} on rank(s) {missing_ranks}")

        flat: List[Any] = []
        for _, values in parts:
            flat.extend(values)
        arrays[key] = GatheredArray.build(kind, flat)
        self.logger.debug(f"Gathered {key}: {len(flat)} values from {len(parts)} ranks")

    def _fetch(self, spec: VariableSpec, kind: ValueKind, index: int) -> Tuple[bool, List[Any]]:
        """
        Local column for one channel/level, as a plain list ready to gather.
        On failure, a column of missing values of local length.

        Conversion to the wire type happens here too, so a value that does not
        fit the kind (an integer beyond int32, say) fails this rank's fetch
        instead of skipping its gather.
        """
        try:
            values = self._store.fetch_local(spec, index, skip_derived=self._skip_derived)
            return True, _to_wire(kind, values)
        except NotPresentError as e:
            self.logger.debug(f"Local fetch failed: {e}")
        except UnsupportedKindError:
            raise
        except (OverflowError, TypeError, ValueError) as e:
            self.logger.warning(f"Cannot convert {spec.full_name} to {kind.value}: {e}")
        return False, _to_wire(kind, [missing_value(kind)] * self._store.nlocs)


def _to_wire(kind: ValueKind, values: Sequence[Any]) -> List[Any]:
    if kind in (ValueKind.STRING, ValueKind.DATETIME):
        return list(values)
    # Booleans travel as 0/1 integers.
    return coerce_values(kind, values).tolist()
