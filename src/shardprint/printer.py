"""
Filter data printer.

Drives one render invocation through its stages:

    IDLE -> MATERIALIZING -> RECONCILING -> SELECTING -> RENDERING -> DONE

Every rank runs every stage (the gathers inside the first two stages are
collective); only the writer rank writes the result to the output stream.
Each stage hands an immutable value to the next one, so stages can be tested
on their own.

Failure policy
--------------
- A missing variable, channel or level becomes a notice; rendering goes on.
- `InvalidRangeError` (contradictory location window) aborts the invocation.
- `UnsupportedKindError` aborts the invocation.
"""

import sys
from enum import Enum
from typing import IO, List, Optional

from shardprint.config import config
from shardprint.gather.materializer import MaterializedData, VariableMaterializer
from shardprint.gather.reconciler import GlobalIndexReconciler, Reconciliation
from shardprint.loggers.error_log import get_error_logger, setup_test_logger
from shardprint.renderers.selection import locations_per_page, paginate, select_positions
from shardprint.renderers.summary_renderer import StoreSummaryRenderer
from shardprint.renderers.table_renderer import TableRenderer
from shardprint.runtime.settings import PrintSettings
from shardprint.store.base_store import ValueStore
from shardprint.transport.distributed import CollectiveChannel, default_channel

BANNER = (
    "",
    "############################",
    "### Printing filter data ###",
    "############################",
    "",
    "",
)


class PrintStage(str, Enum):
    IDLE = "idle"
    MATERIALIZING = "materializing"
    RECONCILING = "reconciling"
    SELECTING = "selecting"
    RENDERING = "rendering"
    DONE = "done"


class FilterDataPrinter:
    """
    Prints requested variables of a rank-sharded store as a table ordered by
    global location number.

    Usage
    -----
        printer = FilterDataPrinter(store, channel, settings)
        text = printer.render()

    `render()` returns the full text on every rank, so callers and tests can
    compare ranks; only `writer_rank` writes it out.
    """

    def __init__(
        self,
        store: ValueStore,
        channel: Optional[CollectiveChannel] = None,
        settings: Optional[PrintSettings] = None,
        stream: Optional[IO[str]] = None,
        writer_rank: Optional[int] = None,
    ):
        self._store = store
        self._channel = channel or default_channel()
        self._settings = settings or PrintSettings()
        self._stream = stream
        self._writer_rank = config.writer_rank if writer_rank is None else int(writer_rank)
        self.stage = PrintStage.IDLE
        self.logger = get_error_logger("FilterDataPrinter")

    @property
    def is_writer(self) -> bool:
        return self._channel.rank == self._writer_rank

    def render(self) -> str:
        self.logger.debug("FilterDataPrinter render started")
        s = self._settings
        specs = s.variable_specs()

        lines: List[str] = list(BANNER)
        if s.message is not None:
            lines.extend([s.message, ""])
        if s.summary:
            lines.extend(StoreSummaryRenderer(self._store, s.max_text_width).render_lines())

        self.stage = PrintStage.MATERIALIZING
        data: MaterializedData = VariableMaterializer(
            self._store, self._channel, skip_derived=s.skip_derived
        ).materialize(specs)
        lines.extend(data.notices)

        self.stage = PrintStage.RECONCILING
        rec: Reconciliation = GlobalIndexReconciler(self._store, self._channel).reconcile(
            where=s.where,
            where_operator=s.where_operator,
            print_rank0=s.print_rank0,
        )
        lines.extend(rec.notices)

        self.stage = PrintStage.SELECTING
        selected = select_positions(rec.positions, rec.apply, s.locmin, s.locmax, rec.total)
        table = TableRenderer(
            specs,
            column_width=s.column_width,
            float_precision=s.float_precision,
            scientific_notation=s.scientific_notation,
        )
        name_width = table.name_width(data)
        per_page = locations_per_page(s.max_text_width, name_width, s.column_width)
        pages = paginate(selected, per_page)

        self.stage = PrintStage.RENDERING
        lines.extend(table.render_lines(data, pages, name_width))
        text = "\n".join(lines) + "\n"

        if self.is_writer:
            self._write(text)
        self.stage = PrintStage.DONE
        self.logger.debug(
            f"FilterDataPrinter render finished: {len(selected)} locations, {len(pages)} pages"
        )
        return text

    def _write(self, text: str) -> None:
        if self._settings.output_to_test:
            test_logger = setup_test_logger()
            for line in text.splitlines():
                test_logger.info(line)
            return
        stream = self._stream or sys.stdout
        stream.write(text)
        stream.flush()


def render(
    store: ValueStore,
    settings: PrintSettings,
    channel: Optional[CollectiveChannel] = None,
    stream: Optional[IO[str]] = None,
) -> str:
    """Run one render invocation; see `FilterDataPrinter`."""
    return FilterDataPrinter(store, channel, settings, stream).render()
