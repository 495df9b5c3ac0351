"""
Tabular renderer for gathered location data.

Each page is printed as:

      Location |        1 |        2 |
    -----------+----------+----------+-
    ObsValue/t | 1.500000 |  missing |

i.e. a header of global location numbers, a dashed separator, then one row
per printable variable row. Every cell is right-aligned to the column width
and followed by ``" | "``. A blank line closes each page.
"""

from typing import List, Sequence, Tuple

from shardprint.gather.materializer import MaterializedData, rendered_keys
from shardprint.gather.reconciler import OrderedPosition
from shardprint.renderers.base_renderer import BaseRenderer
from shardprint.schema.variables import GatheredArray, VariableSpec
from shardprint.utils.formatting import MISSING_MARKER, fmt_cell, fmt_value

HEADER_LABEL = "Location"


class TableRenderer(BaseRenderer):
    """
    Renders pages of ordered positions as fixed-width text tables.

    Notes
    -----
    - Rows follow the order of the requested variables; level rows for
      level-resolved variables, channel rows otherwise.
    - Rows missing from the gathered table are skipped silently; they were
      already reported as notices during materialization.
    """

    NAME = "Table"

    def __init__(
        self,
        specs: Sequence[VariableSpec],
        column_width: int = 20,
        float_precision: int = 6,
        scientific_notation: bool = False,
    ):
        super().__init__(name=self.NAME)
        self._specs = tuple(specs)
        self._column_width = int(column_width)
        self._precision = int(float_precision)
        self._scientific = bool(scientific_notation)

    def rows(self, data: MaterializedData) -> List[Tuple[str, GatheredArray]]:
        """Printable rows present in `data`, in request order."""
        out: List[Tuple[str, GatheredArray]] = []
        for spec in self._specs:
            for key in rendered_keys(spec):
                array = data.get(key)
                if array is not None:
                    out.append((key, array))
        return out

    def name_width(self, data: MaterializedData) -> int:
        return max([len(HEADER_LABEL)] + [len(key) for key, _ in self.rows(data)])

    def format_value(self, array: GatheredArray, index: int) -> str:
        if array.is_missing(index):
            return fmt_cell(MISSING_MARKER, self._column_width)
        text = fmt_value(array.kind, array.values[index], self._precision, self._scientific)
        return fmt_cell(text, self._column_width)

    def render_page(
        self,
        data: MaterializedData,
        page: Sequence[OrderedPosition],
        name_width: int,
    ) -> List[str]:
        cw = self._column_width
        lines = [
            fmt_cell(HEADER_LABEL, name_width)
            + " | "
            + "".join(f"{fmt_cell(str(p.location), cw)} | " for p in page),
            "-" * name_width + "-+-" + "".join("-" * cw + "-+-" for _ in page),
        ]
        for key, array in self.rows(data):
            lines.append(
                fmt_cell(key, name_width)
                + " | "
                + "".join(f"{self.format_value(array, p.index)} | " for p in page)
            )
        lines.append("")
        return lines

    def render_lines(
        self,
        data: MaterializedData,
        pages: Sequence[Sequence[OrderedPosition]],
        name_width: int = 0,
    ) -> List[str]:
        name_width = name_width or self.name_width(data)
        lines: List[str] = []
        for page in pages:
            lines.extend(self.render_page(data, page, name_width))
        return lines
