from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

from shardprint.schema.variables import ValueKind, VariableSpec


class ValueStore(ABC):
    """
    Abstract base class for the local shard of a partitioned location store.

    A store answers questions about the locations held by *this* rank only:
    which variables exist, what kind they are, and their local values. It
    never talks to other ranks; gathering is the caller's job.
    """

    @abstractmethod
    def has_variable(self, spec: VariableSpec, skip_derived: bool = False) -> bool:
        raise NotImplementedError("Must be implemented by subclasses.")

    @abstractmethod
    def kind(self, spec: VariableSpec) -> ValueKind:
        raise NotImplementedError("Must be implemented by subclasses.")

    @abstractmethod
    def level_count(self, spec: VariableSpec) -> int:
        raise NotImplementedError("Must be implemented by subclasses.")

    @abstractmethod
    def fetch_local(
        self,
        spec: VariableSpec,
        index: int = 0,
        skip_derived: bool = False,
    ) -> Sequence[Any]:
        """
        Return the local column for channel `index` (or level `index` for a
        level-resolved variable).

        Raises
        ------
        NotPresentError
            If the variable, channel or level is not held by this store.
        """
        raise NotImplementedError("Must be implemented by subclasses.")

    @abstractmethod
    def local_index_map(self) -> List[int]:
        """Global location number of every local location, in local order."""
        raise NotImplementedError("Must be implemented by subclasses.")

    @abstractmethod
    def evaluate_predicate(
        self,
        where: Optional[Sequence[Dict[str, Any]]] = None,
        operator: str = "and",
    ) -> List[bool]:
        """Local selection flags, one per local location."""
        raise NotImplementedError("Must be implemented by subclasses.")

    @abstractmethod
    def variables(self) -> List[str]:
        """All ``group/name`` paths held by this store."""
        raise NotImplementedError("Must be implemented by subclasses.")

    @property
    def nlocs(self) -> int:
        return len(self.local_index_map())
