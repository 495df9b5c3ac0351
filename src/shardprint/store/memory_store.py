"""
In-memory value store for one rank's shard of location data.

Internal layout
---------------
    self._columns["group/name"]      -> (ValueKind, [v0, v1, ...])   one value per local location
    self._columns["group/name_7"]    -> channel 7 of a channelled variable
    self._levels["GeoVaLs/name"]     -> (ValueKind, [[level 0 column], [level 1 column], ...])

Derived groups
--------------
A column stored under ``Derived<Group>/<name>`` shadows ``<Group>/<name>``
unless the caller asks to skip derived values.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from shardprint.errors import NotPresentError
from shardprint.loggers.error_log import get_error_logger
from shardprint.schema.variables import (
    MISSING_DATETIME_TEXT,
    ValueKind,
    VariableSpec,
    format_datetime,
    missing_value,
)
from .base_store import ValueStore

DERIVED_PREFIX = "Derived"


def infer_kind(values: Iterable[Any]) -> ValueKind:
    """Guess a kind from the first non-None value; bool is checked before int."""
    for v in values:
        if v is None:
            continue
        if isinstance(v, bool):
            return ValueKind.BOOL
        if isinstance(v, int):
            return ValueKind.INTEGER
        if isinstance(v, float):
            return ValueKind.FLOAT
        if isinstance(v, datetime):
            return ValueKind.DATETIME
        return ValueKind.STRING
    return ValueKind.FLOAT


def _fill_missing(kind: ValueKind, values: Iterable[Any]) -> List[Any]:
    if kind is ValueKind.BOOL:
        return [bool(v) for v in values]
    fill = missing_value(kind)
    return [fill if v is None else v for v in values]


class MemoryValueStore(ValueStore):
    """
    Each column is a list with one entry per local location. Column names
    must be unique.
    """

    def __init__(self, index: Sequence[int]):
        self._index: List[int] = [int(i) for i in index]
        self._columns: Dict[str, Tuple[ValueKind, List[Any]]] = {}
        self._levels: Dict[str, Tuple[ValueKind, List[List[Any]]]] = {}
        self.logger = get_error_logger("MemoryValueStore")

    # ------------------------------------------------------------------
    # Population
    # ------------------------------------------------------------------

    def add_column(
        self,
        path: str,
        values: Sequence[Any],
        kind: Optional[Any] = None,
    ) -> None:
        """
        Add a column under ``group/name``.
        Raise ValueError if the column exists or its length is wrong.
        """
        if path in self._columns or path in self._levels:
            raise ValueError(f"Column '{path}' already exists.")
        self._check_length(path, values)
        kind = ValueKind.parse(kind) if kind is not None else infer_kind(values)
        self._columns[path] = (kind, _fill_missing(kind, values))

    def add_levels(
        self,
        path: str,
        levels: Sequence[Sequence[Any]],
        kind: Optional[Any] = ValueKind.FLOAT,
    ) -> None:
        """
        Add a level-resolved variable, given as one column per level.
        """
        if path in self._columns or path in self._levels:
            raise ValueError(f"Column '{path}' already exists.")
        kind = ValueKind.parse(kind)
        cols = []
        for level, col in enumerate(levels):
            self._check_length(f"{path} (level {level})", col)
            cols.append(_fill_missing(kind, col))
        self._levels[path] = (kind, cols)

    def _check_length(self, path: str, values: Sequence[Any]) -> None:
        if len(values) != len(self._index):
            raise ValueError(
                f"Column '{path}' has {len(values)} values, expected {len(self._index)}"
            )

    # ------------------------------------------------------------------
    # ValueStore interface
    # ------------------------------------------------------------------

    def _resolve(self, group: str, name: str, skip_derived: bool) -> Optional[str]:
        if not skip_derived:
            derived = f"{DERIVED_PREFIX}{group}/{name}"
            if derived in self._columns or derived in self._levels:
                return derived
        path = f"{group}/{name}"
        if path in self._columns or path in self._levels:
            return path
        return None

    def _spec_paths(self, spec: VariableSpec, skip_derived: bool) -> List[str]:
        if spec.is_multi_level:
            path = self._resolve(spec.group, spec.name, skip_derived)
            if path in self._levels:
                return [path]
        names = [spec.channel_name(i) for i in range(spec.size)]
        paths = [self._resolve(spec.group, n, skip_derived) for n in names]
        return [p for p in paths if p is not None]

    def has_variable(self, spec: VariableSpec, skip_derived: bool = False) -> bool:
        return bool(self._spec_paths(spec, skip_derived))

    def kind(self, spec: VariableSpec) -> ValueKind:
        paths = self._spec_paths(spec, skip_derived=False)
        if not paths:
            raise NotPresentError(f"{spec.full_name} not present in store")
        path = paths[0]
        if path in self._levels:
            return self._levels[path][0]
        return self._columns[path][0]

    def level_count(self, spec: VariableSpec) -> int:
        path = self._resolve(spec.group, spec.name, skip_derived=False)
        if path is None or path not in self._levels:
            return 0
        return len(self._levels[path][1])

    def fetch_local(
        self,
        spec: VariableSpec,
        index: int = 0,
        skip_derived: bool = False,
    ) -> List[Any]:
        if spec.is_multi_level:
            path = self._resolve(spec.group, spec.name, skip_derived)
            if path in self._levels:
                cols = self._levels[path][1]
                if not 0 <= index < len(cols):
                    raise NotPresentError(
                        f"{spec.full_name} (level {index}) not present in store"
                    )
                return list(cols[index])

        name = spec.channel_name(index)
        path = self._resolve(spec.group, name, skip_derived)
        if path is None or path not in self._columns:
            raise NotPresentError(f"{spec.group}/{name} not present in store")
        return list(self._columns[path][1])

    def local_index_map(self) -> List[int]:
        return list(self._index)

    def variables(self) -> List[str]:
        return sorted(set(self._columns) | set(self._levels))

    def evaluate_predicate(
        self,
        where: Optional[Sequence[Dict[str, Any]]] = None,
        operator: str = "and",
    ) -> List[bool]:
        """
        Evaluate `where` clauses against local columns.

        Each clause names a column with ``variable`` and may carry
        ``minvalue``, ``maxvalue``, ``is_in``, ``is_not_in`` and
        ``is_defined``. All conditions inside one clause must hold; clauses
        are combined with `operator` (``and`` / ``or``). An empty `where`
        selects every location.
        """
        n = len(self._index)
        if not where:
            return [True] * n
        if operator not in ("and", "or"):
            raise ValueError(f"Unknown where operator: {operator!r}")

        results = [self._evaluate_clause(clause) for clause in where]
        combine = all if operator == "and" else any
        return [combine(r[i] for r in results) for i in range(n)]

    def _evaluate_clause(self, clause: Dict[str, Any]) -> List[bool]:
        path = clause.get("variable")
        if path is None:
            raise ValueError(f"where clause is missing 'variable': {clause}")
        group, _, name = str(path).partition("/")
        resolved = self._resolve(group, name, skip_derived=False)
        if resolved is None or resolved not in self._columns:
            raise NotPresentError(f"{path} not present in store")
        kind, values = self._columns[resolved]

        out: List[bool] = []
        for v in values:
            defined = not self._is_missing(kind, v)
            ok = True
            if "is_defined" in clause:
                ok = ok and (defined == bool(clause["is_defined"]))
            if "minvalue" in clause:
                ok = ok and defined and v >= clause["minvalue"]
            if "maxvalue" in clause:
                ok = ok and defined and v <= clause["maxvalue"]
            if "is_in" in clause:
                ok = ok and defined and v in clause["is_in"]
            if "is_not_in" in clause:
                ok = ok and v not in clause["is_not_in"]
            out.append(bool(ok))
        return out

    @staticmethod
    def _is_missing(kind: ValueKind, value: Any) -> bool:
        if kind is ValueKind.BOOL:
            return False
        if kind is ValueKind.DATETIME:
            return format_datetime(value) == MISSING_DATETIME_TEXT
        return value == missing_value(kind)


# ---------------------------------------------------------------------------
# Sharding a logical dataset
# ---------------------------------------------------------------------------

SHARD_POLICIES = ("round_robin", "contiguous")


def owner_of(position: int, total: int, world_size: int, policy: str) -> int:
    """Rank owning the record at `position` of a `total`-record dataset."""
    if policy == "round_robin":
        return position % world_size
    if policy == "contiguous":
        block = -(-total // world_size) if total else 1
        return position // block
    raise ValueError(f"Unknown distribution policy {policy!r}; use one of {SHARD_POLICIES}")


def shard_dataset(
    dataset: Dict[str, Any],
    rank: int,
    world_size: int,
    policy: str = "round_robin",
) -> MemoryValueStore:
    """
    Build the `MemoryValueStore` holding `rank`'s share of a logical dataset.

    Dataset format
    --------------
        {
          "locations": [2, 4, 1, 3],                  # global numbers, any order
          "variables": {
              "ObsValue/t": {"kind": "float", "values": [...]},
              "GeoVaLs/t":  {"kind": "float", "levels": [[...], [...]]},
          }
        }

    `locations` defaults to ``0..n-1``. Locations dropped upstream are simply
    absent. ``null`` values become the kind's missing value.
    """
    variables: Dict[str, Dict[str, Any]] = dataset.get("variables", {})
    locations = dataset.get("locations")
    if locations is None:
        total = 0
        for entry in variables.values():
            if "values" in entry:
                total = len(entry["values"])
                break
            if entry.get("levels"):
                total = len(entry["levels"][0])
                break
        locations = list(range(total))
    total = len(locations)

    mine = [p for p in range(total) if owner_of(p, total, world_size, policy) == rank]
    store = MemoryValueStore([locations[p] for p in mine])

    for path, entry in variables.items():
        kind = entry.get("kind")
        if "levels" in entry:
            store.add_levels(
                path,
                [[col[p] for p in mine] for col in entry["levels"]],
                kind=kind or ValueKind.FLOAT,
            )
        else:
            values = entry.get("values", [])
            if len(values) != total:
                raise ValueError(
                    f"Variable '{path}' has {len(values)} values, expected {total}"
                )
            if kind is None:
                kind = infer_kind(values)
            store.add_column(path, [values[p] for p in mine], kind=kind)
    return store
