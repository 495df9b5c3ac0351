"""
Exception taxonomy for shardprint.

- `NotPresentError`: a variable, channel or level is unavailable. Recoverable;
  the materializer turns it into an inline notice and moves on.
- `InvalidRangeError`: the location window is contradictory. Fatal to a
  render invocation.
- `UnsupportedKindError`: a value kind outside the five recognised kinds.
  Fatal; indicates a configuration or data-contract violation.
- `CollectiveMismatchError`: ranks disagreed on the shape of a collective.
"""


class ShardPrintError(Exception):
    """Base class for all shardprint errors."""


class NotPresentError(ShardPrintError, KeyError):
    def __str__(self) -> str:
        # KeyError quotes its message; keep it readable.
        return str(self.args[0]) if self.args else "not present"


class InvalidRangeError(ShardPrintError, ValueError):
    pass


class UnsupportedKindError(ShardPrintError, TypeError):
    pass


class CollectiveMismatchError(ShardPrintError, RuntimeError):
    pass
