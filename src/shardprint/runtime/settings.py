"""
shardprint settings (shared configuration schema).

This module defines the configuration dataclasses used by:
- CLI (decodes a JSON config file)
- FilterDataPrinter (one render invocation per settings object)

Settings are plain frozen dataclasses; decoding and validation of untrusted
input (JSON files, dicts from a larger config tree) goes through `msgspec`,
which understands dataclasses natively.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union

import msgspec

from shardprint.schema.variables import VariableSpec


@dataclass(frozen=True)
class VariablePrintSettings:
    """
    One entry of the `variables` list.

    Notes:
    - `name` is a ``group/name`` path, e.g. ``ObsValue/brightness_temperature``.
    - `channels` only applies to non level-resolved variables.
    - `levels` only applies to level-resolved groups (GeoVaLs, ObsDiag,
      ObsBiasTerm).
    - `kind` optionally pins the value kind; otherwise the store decides.
    """

    name: str
    channels: Tuple[int, ...] = ()
    levels: Tuple[int, ...] = ()
    kind: Optional[str] = None

    def to_spec(self) -> VariableSpec:
        return VariableSpec.from_path(
            self.name,
            channels=self.channels,
            levels=self.levels,
            kind=self.kind,
        )


@dataclass(frozen=True)
class PrintSettings:
    """
    Settings for one render invocation.

    Notes:
    - `locmin`/`locmax` bound the global location numbers printed; a zero
      `locmax` means no upper limit.
    - `where`/`where_operator` select locations through the value store's
      predicate service.
    - `print_rank0` restricts eligible locations to those held by rank 0.
    - `column_width`, `max_text_width`, `float_precision` and
      `scientific_notation` control table layout.
    - `output_to_test` routes the table to the test stream instead of stdout.
    """

    variables: Tuple[VariablePrintSettings, ...] = ()
    where: Tuple[Dict[str, Any], ...] = ()
    where_operator: str = "and"
    locmin: int = 0
    locmax: int = 0
    column_width: int = 20
    max_text_width: int = 120
    float_precision: int = 6
    scientific_notation: bool = False
    print_rank0: bool = False
    skip_derived: bool = False
    message: Optional[str] = None
    summary: bool = False
    output_to_test: bool = False

    def __post_init__(self):
        if self.column_width <= 0:
            raise ValueError(f"column_width must be > 0, got {self.column_width}")
        if self.max_text_width <= 0:
            raise ValueError(f"max_text_width must be > 0, got {self.max_text_width}")
        if self.float_precision < 0:
            raise ValueError(
                f"float_precision must be >= 0, got {self.float_precision}"
            )
        if self.where_operator not in ("and", "or"):
            raise ValueError(
                f"where_operator must be 'and' or 'or', got {self.where_operator!r}"
            )

    def variable_specs(self) -> Tuple[VariableSpec, ...]:
        """Requested variables, in configuration order."""
        return tuple(v.to_spec() for v in self.variables)


def load_settings(source: Union[bytes, str, Dict[str, Any]]) -> PrintSettings:
    """
    Decode and validate `PrintSettings`.

    Parameters
    ----------
    source : bytes | str | dict
        JSON document (bytes or str) or an already-parsed mapping.

    Raises
    ------
    msgspec.ValidationError
        If a field has the wrong type or a constraint fails.
    """
    if isinstance(source, (bytes, str)):
        return msgspec.json.decode(source, type=PrintSettings)
    return msgspec.convert(source, type=PrintSettings)
