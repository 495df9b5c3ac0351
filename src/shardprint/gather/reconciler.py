"""
Global index reconciliation (every rank).

Gathered columns arrive in rank order, not in the order of the original data
sample. Each rank's store knows the global location number of every local
location; gathering those numbers and sorting them recovers the original
order.

Example
-------
Six locations numbered 0-5, with 0 and 5 dropped upstream, distributed
round-robin over two ranks:

    rank 0 index map : [2, 4]
    rank 1 index map : [1, 3]
    gathered         : [2, 4, 1, 3]
    sort permutation : [2, 0, 3, 1]
    positions        : (1, 2), (2, 0), (3, 3), (4, 1)

The positions are the same for any number of ranks and any distribution.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from shardprint.errors import NotPresentError
from shardprint.loggers.error_log import get_error_logger
from shardprint.store.base_store import ValueStore
from shardprint.transport.distributed import CollectiveChannel


@dataclass(frozen=True)
class OrderedPosition:
    """
    One location in reconstructed global order.

    Attributes
    ----------
    location : int
        Global location number in the original data sample.
    index : int
        Position of the location in the gathered (rank-ordered) arrays.
    """

    location: int
    index: int


@dataclass(frozen=True)
class Reconciliation:
    """
    Result of reconciling rank-ordered data with the global order.

    Attributes
    ----------
    positions : Tuple[OrderedPosition, ...]
        Every gathered location, ascending by location number. Ties keep
        gather order (rank, then local index).
    apply : np.ndarray
        Gathered selection flags (bool), indexed like the gathered arrays.
    total : int
        Number of gathered locations across all ranks.
    notices : Tuple[str, ...]
        Identical on every rank; set when some ranks could not evaluate the
        `where` clauses.
    """

    positions: Tuple[OrderedPosition, ...]
    apply: Any
    total: int
    notices: Tuple[str, ...] = ()


def order_positions(global_index: Sequence[int]) -> Tuple[OrderedPosition, ...]:
    """
    Sort gathered location numbers with a stable sort.

    Gaps in the numbering (dropped locations) are expected. Duplicated
    numbers keep their gather order.
    """
    index = np.asarray(global_index, dtype=np.int64).reshape(-1)
    order = np.argsort(index, kind="stable")
    return tuple(
        OrderedPosition(location=int(index[i]), index=int(i)) for i in order
    )


_ABSENT = "absent"
_INVALID = "invalid"


class GlobalIndexReconciler:
    """
    Gathers index maps and selection flags, then orders them.

    Gathers issued (fixed, in this order): selection flags with the local
    predicate status, index map.

    A rank whose store cannot evaluate the `where` clauses (for example a
    variable absent from its shard) still takes part in both gathers with
    all-False flags. Every rank then sees the same statuses. An invalid clause
    on any rank, or a variable absent on every rank, raises on all ranks;
    otherwise the failing ranks' locations are left unselected and a notice
    names them.
    """

    def __init__(self, store: ValueStore, channel: CollectiveChannel):
        self._store = store
        self._channel = channel
        self.logger = get_error_logger("GlobalIndexReconciler")

    def reconcile(
        self,
        where: Optional[Sequence[Dict[str, Any]]] = None,
        where_operator: str = "and",
        print_rank0: bool = False,
    ) -> Reconciliation:
        status, apply = self._evaluate(where, where_operator)
        if print_rank0 and self._channel.rank != 0:
            apply = [0] * len(apply)

        parts = self._channel.gather_per_rank((status, apply))
        global_index = self._channel.gather_all(self._store.local_index_map())

        notices = self._check_statuses([s for s, _ in parts])

        global_apply: List[int] = []
        for _, flags in parts:
            global_apply.extend(flags)

        if len(global_apply) != len(global_index):
            raise ValueError(
                f"Selection flags ({len(global_apply)}) and index map "
                f"({len(global_index)}) differ in length"
            )

        positions = order_positions(global_index)
        self.logger.debug(f"Reconciled {len(positions)} locations")
        return Reconciliation(
            positions=positions,
            apply=np.asarray(global_apply, dtype=bool),
            total=len(global_index),
            notices=notices,
        )

    def _evaluate(
        self, where: Optional[Sequence[Dict[str, Any]]], where_operator: str
    ) -> Tuple[Optional[Tuple[str, str]], List[int]]:
        try:
            flags = self._store.evaluate_predicate(where, where_operator)
        except NotPresentError as e:
            self.logger.debug(f"Local where evaluation failed: {e}")
            return (_ABSENT, str(e)), [0] * self._store.nlocs
        except (TypeError, ValueError) as e:
            self.logger.debug(f"Local where evaluation failed: {e}")
            return (_INVALID, str(e)), [0] * self._store.nlocs
        return None, [int(bool(f)) for f in flags]

    @staticmethod
    def _check_statuses(statuses: Sequence[Optional[Tuple[str, str]]]) -> Tuple[str, ...]:
        failed = [(r, s) for r, s in enumerate(statuses) if s is not None]
        if not failed:
            return ()
        invalid = [(r, s) for r, s in failed if s[0] == _INVALID]
        if invalid:
            rank, (_, message) = invalid[0]
            raise ValueError(f"where clause could not be evaluated on rank {rank}: {message}")
        ranks = [r for r, _ in failed]
        message = failed[0][1][1]
        if len(failed) == len(statuses):
            raise NotPresentError(message)
        return (f"where clause: {message} on rank(s) {ranks}; locations not selected",)
