import io
from typing import List

from rich.console import Console
from rich.table import Table

from shardprint.errors import NotPresentError
from shardprint.loggers.error_log import get_error_logger
from shardprint.renderers.base_renderer import BaseRenderer
from shardprint.schema.variables import VariableSpec
from shardprint.store.base_store import ValueStore


class StoreSummaryRenderer(BaseRenderer):
    """
    Summary of the variables held by the writer rank's local store, as a
    Rich table rendered to plain text.
    """

    NAME = "Store Summary"

    def __init__(self, store: ValueStore, width: int = 120):
        super().__init__(name=self.NAME)
        self._store = store
        self._width = max(int(width), 40)
        self._logger = get_error_logger("StoreSummaryRenderer")

    def get_table(self) -> Table:
        table = Table(
            title=f"Local store: {self._store.nlocs} locations",
            show_header=True,
            header_style=None,
            box=None,
            pad_edge=False,
            padding=(0, 1),
        )
        table.add_column("Variable", justify="left")
        table.add_column("Kind", justify="left")
        table.add_column("Levels", justify="right")

        for path in self._store.variables():
            spec = VariableSpec.from_path(path)
            try:
                kind = self._store.kind(spec).value
            except NotPresentError:
                self._logger.warning(f"Variable {path} listed but not readable")
                kind = "?"
            levels = self._store.level_count(spec)
            table.add_row(path, kind, str(levels) if levels else "—")

        if not self._store.variables():
            table.add_row("No variables", "—", "—")
        return table

    def render_lines(self) -> List[str]:
        buf = io.StringIO()
        console = Console(
            file=buf,
            width=self._width,
            color_system=None,
            force_terminal=False,
            highlight=False,
            emoji=False,
        )
        console.print(self.get_table())
        return [line.rstrip() for line in buf.getvalue().splitlines()]
