"""
Collective channel for rank-sharded location data.

Every cooperating process runs the same sequence of gathers (SPMD). A gather
is a blocking barrier: all ranks must issue the same number of gathers in the
same order, or the group deadlocks. Callers therefore derive the gather
sequence from shared configuration only, never from local data.

Implementations
---------------
- `LocalCollective`   : single process, gathers are identity operations
- `TorchCollective`   : torch.distributed process group (`all_gather_object`)
- `InProcessGroup`    : N ranks as threads in one process; used to replay a
                        sharded dataset offline and in tests
"""

import os
import threading
from abc import ABC, abstractmethod
from typing import Any, List, Optional, Sequence, Tuple

import torch.distributed as dist

from shardprint.errors import CollectiveMismatchError
from shardprint.loggers.error_log import get_error_logger


def get_ddp_info() -> Tuple[bool, int, int]:
    """
    Detect whether we are running inside a multi-process group.

    Returns:
        is_distributed (bool): True if running with multiple processes.
        rank (int): Global rank. 0 if not distributed.
        world_size (int): Number of processes. 1 if not distributed.
    """
    if dist.is_available() and dist.is_initialized():
        world_size = dist.get_world_size()
        return world_size > 1, dist.get_rank(), world_size

    # Defaults for single-process runs
    world_size = int(os.environ.get("WORLD_SIZE", "1"))
    rank = int(os.environ.get("RANK", "0"))
    return world_size > 1, rank, world_size


class CollectiveChannel(ABC):
    """
    Blocking gather-all collective over a fixed group of ranks.
    """

    @property
    @abstractmethod
    def rank(self) -> int:
        raise NotImplementedError("Must be implemented by subclasses.")

    @property
    @abstractmethod
    def world_size(self) -> int:
        raise NotImplementedError("Must be implemented by subclasses.")

    @abstractmethod
    def gather_per_rank(self, obj: Any) -> List[Any]:
        """
        Collect one object from every rank.

        Returns a list of length `world_size`, indexed by rank, identical on
        every rank.
        """
        raise NotImplementedError("Must be implemented by subclasses.")

    def gather_all(self, values: Sequence[Any]) -> List[Any]:
        """
        Concatenate every rank's local sequence in rank order.

        The result is identical on every rank; its length is the sum of the
        local lengths.
        """
        out: List[Any] = []
        for part in self.gather_per_rank(list(values)):
            out.extend(part)
        return out


class LocalCollective(CollectiveChannel):
    """Single-process channel: every gather returns the local contribution."""

    @property
    def rank(self) -> int:
        return 0

    @property
    def world_size(self) -> int:
        return 1

    def gather_per_rank(self, obj: Any) -> List[Any]:
        return [obj]


class TorchCollective(CollectiveChannel):
    """
    Channel backed by an initialised torch.distributed process group.

    Objects are pickled by `all_gather_object`, so local columns of any kind
    (numbers, strings, timestamps) travel unchanged.
    """

    def __init__(self, group: Optional[Any] = None):
        if not (dist.is_available() and dist.is_initialized()):
            raise RuntimeError(
                "torch.distributed is not initialised; call init_process_group first"
            )
        self._group = group
        self.logger = get_error_logger("TorchCollective")

    @property
    def rank(self) -> int:
        return dist.get_rank(group=self._group)

    @property
    def world_size(self) -> int:
        return dist.get_world_size(group=self._group)

    def gather_per_rank(self, obj: Any) -> List[Any]:
        out: List[Any] = [None] * self.world_size
        dist.all_gather_object(out, obj, group=self._group)
        return out


def default_channel() -> CollectiveChannel:
    """Torch channel when a multi-rank process group is up, local channel otherwise."""
    is_distributed, _, _ = get_ddp_info()
    if is_distributed and dist.is_available() and dist.is_initialized():
        return TorchCollective()
    return LocalCollective()


_FINISHED = object()


class InProcessGroup:
    """
    A group of `world_size` ranks running as threads in one process.

    Each rank gets its own channel from `channel(rank)`. A gather deposits the
    rank's contribution, waits on a shared barrier until all ranks have
    contributed, reads the full list, then waits once more so the slot list
    can be reused by the next gather.

    Usage
    -----
        group = InProcessGroup(2)
        results = group.run(lambda channel: work(channel))
    """

    def __init__(self, world_size: int, timeout: Optional[float] = 60.0):
        if world_size <= 0:
            raise ValueError(f"world_size must be > 0, got {world_size}")
        self.world_size = int(world_size)
        self._slots: List[Any] = [None] * self.world_size
        self._barrier = threading.Barrier(self.world_size, timeout=timeout)

    def channel(self, rank: int) -> "InProcessChannel":
        if not 0 <= rank < self.world_size:
            raise ValueError(f"rank must be in [0, {self.world_size}), got {rank}")
        return InProcessChannel(self, rank)

    def _exchange(self, rank: int, obj: Any) -> List[Any]:
        self._slots[rank] = obj
        try:
            self._barrier.wait()
            # A rank that already returned meets the others with _FINISHED;
            # every rank sees the same slots, so all of them raise together.
            finished = [r for r, s in enumerate(self._slots) if s is _FINISHED]
            if finished and len(finished) != self.world_size:
                raise CollectiveMismatchError(
                    f"Ranks {finished} finished while other ranks were still gathering"
                )
            gathered = list(self._slots)
            self._barrier.wait()
        except threading.BrokenBarrierError as e:
            raise CollectiveMismatchError(
                f"Rank {rank} gave up waiting for the other ranks to gather"
            ) from e
        return gathered

    def run(self, fn) -> List[Any]:
        """
        Run `fn(channel)` on every rank concurrently; return results by rank.

        The first exception raised on any rank is re-raised after all
        threads finish. The barrier is aborted so the other ranks do not
        wait forever on a gather that will never complete.
        """
        self._barrier.reset()
        results: List[Any] = [None] * self.world_size
        errors: List[Optional[BaseException]] = [None] * self.world_size

        def target(rank: int) -> None:
            try:
                results[rank] = fn(self.channel(rank))
                self._exchange(rank, _FINISHED)
            except BaseException as e:
                errors[rank] = e
                self._barrier.abort()

        threads = [
            threading.Thread(target=target, args=(r,), name=f"shardprint-rank{r}")
            for r in range(self.world_size)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        for e in errors:
            if e is not None and not isinstance(e, CollectiveMismatchError):
                raise e
        for e in errors:
            if e is not None:
                raise e
        return results


class InProcessChannel(CollectiveChannel):
    def __init__(self, group: InProcessGroup, rank: int):
        self._group = group
        self._rank = rank

    @property
    def rank(self) -> int:
        return self._rank

    @property
    def world_size(self) -> int:
        return self._group.world_size

    def gather_per_rank(self, obj: Any) -> List[Any]:
        return self._group._exchange(self._rank, obj)
