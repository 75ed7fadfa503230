import logging
from collections import deque
from typing import Iterable, Literal, Optional

from rich.console import Console, Group
from rich.live import Live
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
import structlog

from grid_mapper.mines import BOARD_COLUMNS, MINES_GAME_TILES_COUNT, tile_coordinates
from grid_mapper.state_queue import SingleSlotQueue
from grid_mapper.state_snapshot import SearchSnapshot, SearchStatus
from grid_mapper.utils import format_tiles


LOG_BUFFER = deque(maxlen=5000)
LOG_PANEL_LINES = 6
LEVEL_STYLE = {
    logging.DEBUG: "dim",
    logging.INFO: "",
    logging.WARNING: "yellow",
    logging.ERROR: "red",
    logging.CRITICAL: "bold red",
}

COLORS = {
    "hit": "bold white on red",
    "miss": "bold black on yellow",
    "mine": "bright_red",
    "safe": "green",
    "selected": "bold black on cyan",
    "unknown": "dim",
}

STATUS_STYLE = {
    SearchStatus.SEARCHING: "yellow",
    SearchStatus.FOUND: "bold green",
    SearchStatus.CANCELLED: "dim",
    SearchStatus.FAILED: "bold red",
}

TileState = Literal["hit", "miss", "mine", "safe", "selected", "unknown"]


class UILogHandler(logging.Handler):
    def emit(self, record):
        msg = self.format(record)
        LOG_BUFFER.append((record.levelno, msg))


class ConsoleLogHandler(RichHandler):
    """Log lines on stderr for commands that run without the live panel."""


def configure_logging(verbose: bool = False) -> logging.Handler:
    """
    Route structlog through stdlib logging.
    - Every record at the root level goes into the UI log buffer.
    - Warnings and errors (everything with verbose) are also printed to stderr.
    """
    handler = UILogHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s  %(levelname)s  %(message)s", "%H:%M:%S"))

    console_handler = ConsoleLogHandler(console=Console(stderr=True), show_time=False, show_path=False)
    console_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)

    root = logging.getLogger()
    root.handlers = [h for h in root.handlers if not isinstance(h, (UILogHandler, ConsoleLogHandler))]
    root.addHandler(handler)
    root.addHandler(console_handler)
    root.setLevel(logging.DEBUG if verbose else logging.INFO)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )
    return handler


def tile_state(tile: int, mines: set, selected: set) -> TileState:
    if tile in selected:
        if not mines:
            return "selected"
        return "hit" if tile in mines else "miss"
    if mines:
        return "mine" if tile in mines else "safe"
    return "unknown"


def render_board(mines: Iterable[int] = (), selected: Iterable[int] = (), title: str = "Board") -> Panel:
    """Render the 5x5 board. Selected tiles show as hit or miss against the mines."""
    mine_set = set(mines)
    selected_set = set(selected)
    rows = [[""] * BOARD_COLUMNS for _ in range(MINES_GAME_TILES_COUNT // BOARD_COLUMNS)]

    for tile in range(MINES_GAME_TILES_COUNT):
        state = tile_state(tile, mine_set, selected_set)
        style = COLORS[state]
        label = "*" if tile in mine_set else f"{tile:02d}"
        row, col = tile_coordinates(tile)
        rows[row][col] = f"[{style}] {label:>2} [/{style}]"

    grid = Table.grid(padding=(0, 1))
    for _ in range(BOARD_COLUMNS):
        grid.add_column(justify="center", no_wrap=True)
    for row in rows:
        grid.add_row(*row)
    return Panel(grid, title=title, expand=False, padding=(0, 1))


def render_log_panel(title: str, max_lines: int) -> Panel:
    """Render exactly max_lines log entries (cropped to width, no wrap)."""
    items = list(LOG_BUFFER)[-max_lines:]
    if len(items) < max_lines:
        items = [("", "")] * (max_lines - len(items)) + items

    grid = Table.grid(padding=(0, 0))
    grid.add_column(no_wrap=True, overflow="crop")
    for lvl, msg in items:
        style = LEVEL_STYLE.get(lvl, "")
        grid.add_row(f"[{style}]{escape(msg)}[/{style}]" if style else escape(msg))
    return Panel(grid, title=title, padding=(0, 1))


def render(state: Optional[SearchSnapshot]):
    """Render the search state snapshot."""
    if state is None:
        return Panel("Waiting for first update…", title="Seed Search", border_style="dim")

    style = STATUS_STYLE.get(state.status, "white")
    table = Table(show_header=False, show_edge=False, padding=(0, 2))
    table.add_column("Field", style="cyan", no_wrap=True)
    table.add_column("Value", no_wrap=True, overflow="crop")
    table.add_row("Status", f"[{style}]{state.status}[/{style}]")
    table.add_row("Client seed", escape(state.client_seed))
    table.add_row("Rounds", str(state.rounds_total))
    table.add_row("Attempts", f"{state.attempts:,}")
    table.add_row("Rate", f"{state.rate:,.0f}/s")
    if state.server_seed:
        table.add_row("Server seed", f"[bold green]{state.server_seed}[/bold green]")
    if state.layout:
        table.add_row("Mines", format_tiles(state.layout))
    if state.error:
        table.add_row("Error", f"[red]{escape(state.error)}[/red]")

    panel = Panel(table, title=f"Seed Search  |  v{state.version}", border_style=style)
    return Group(panel, render_log_panel("Log", LOG_PANEL_LINES))


def ui_loop(state_queue: SingleSlotQueue[SearchSnapshot]) -> Optional[SearchSnapshot]:
    """Redraw until the search closes the queue. Returns the last snapshot seen."""
    last = None
    # The log panel shows these records while the live view is up.
    muted = [h for h in logging.getLogger().handlers if isinstance(h, ConsoleLogHandler)]
    levels = [h.level for h in muted]
    for h in muted:
        h.setLevel(logging.CRITICAL + 1)
    try:
        with Live(render(None), refresh_per_second=15, screen=False) as live:
            while True:
                state = state_queue.get()
                if state is None:
                    break
                last = state
                live.update(render(state))
    finally:
        for h, level in zip(muted, levels):
            h.setLevel(level)
    return last
