from concurrent.futures import ThreadPoolExecutor
import functools
import pathlib
import threading

import click
from rich.console import Console

from grid_mapper.mines import calculate_mines_positions
from grid_mapper.rounds import DEFAULT_HOME, RoundsFile, SavedRound
from grid_mapper.search import SearchTarget, SeedSearchEngine, MultiTarget, single_target
from grid_mapper.state_queue import SingleSlotQueue
from grid_mapper.state_snapshot import SearchResult, SearchSnapshot
from grid_mapper.ui import configure_logging, render_board, ui_loop
from grid_mapper.utils import (
    GridMapperError,
    format_tiles,
    generate_server_seed,
    parse_tiles,
    require_seed,
    sha256_hex,
)

DEFAULT_CLIENT_SEED = "xproject"
DEFAULT_NONCE = 1


def handle_errors(fn):
    """Report library errors as click errors instead of tracebacks."""
    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except GridMapperError as e:
            raise click.ClickException(str(e)) from e
    return wrapper


def client_seed_option(fn):
    return click.option(
        "--client-seed", "-c",
        envvar="GRID_MAPPER_CLIENT_SEED",
        default=DEFAULT_CLIENT_SEED,
        show_default=True,
        help="Client seed used in the HMAC message.",
    )(fn)


def nonce_option(fn):
    return click.option(
        "--nonce", "-n",
        envvar="GRID_MAPPER_NONCE",
        type=click.IntRange(min=0),
        default=DEFAULT_NONCE,
        show_default=True,
        help="Round nonce.",
    )(fn)


@click.group()
@click.option(
    "--home",
    envvar="GRID_MAPPER_HOME",
    type=click.Path(file_okay=False, path_type=pathlib.Path),
    default=DEFAULT_HOME,
    show_default=True,
    help="Directory holding saved rounds and the last matched seed.",
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug log lines.")
@click.pass_context
def cli(ctx: click.Context, home: pathlib.Path, verbose: bool):
    configure_logging(verbose)
    ctx.obj = RoundsFile(home)


def run_search(client_seed: str, target: SearchTarget, *, live: bool = True) -> SearchResult:
    """Run the search on a worker thread while the main thread shows progress."""
    engine = SeedSearchEngine()
    state_queue: SingleSlotQueue[SearchSnapshot] = SingleSlotQueue()
    cancel_event = threading.Event()

    with ThreadPoolExecutor(max_workers=1) as executor:
        future = executor.submit(
            engine.search,
            client_seed,
            target,
            generate_server_seed,
            state_queue=state_queue,
            cancel_event=cancel_event,
        )

        try:
            if live:
                ui_loop(state_queue)
            else:
                while state_queue.get() is not None:
                    pass
        except KeyboardInterrupt:
            cancel_event.set()
        except BaseException:
            # Stop the worker so the executor can shut down.
            cancel_event.set()
            raise

        return future.result()


@cli.command()
@click.option("--server-seed", "-s", required=True, help="Revealed server seed.")
@client_seed_option
@nonce_option
@click.option("--mines", "-m", required=True, type=click.IntRange(0, 25), help="Number of mines.")
@click.option("--tiles", "-t", default=None, help="Tiles you picked, e.g. \"3,7,12\", to mark hits and misses.")
@handle_errors
def verify(server_seed: str, client_seed: str, nonce: int, mines: int, tiles: str | None):
    """Recompute the mine positions of a round."""
    positions = calculate_mines_positions(server_seed, client_seed, nonce, mines)
    selected = parse_tiles(tiles) if tiles else []

    click.echo(f"Server seed hash: {sha256_hex(server_seed)}")
    click.echo(f"Mines at: {format_tiles(positions)}")
    if selected:
        hits = [t for t in selected if t in positions]
        click.echo(f"Hits: {format_tiles(hits)} ({len(hits)}/{len(selected)})")
    Console().print(render_board(positions, selected, title=f"Nonce {nonce}"))


@cli.command("new-seed")
def new_seed():
    """Generate a random server seed and its hash."""
    seed = generate_server_seed()
    click.echo(f"Server seed: {seed}")
    click.echo(f"Server seed hash: {sha256_hex(seed)}")


@cli.command()
@client_seed_option
@nonce_option
@click.option("--tiles", "-t", default=None, help="Target layout. Without it, all saved rounds are matched.")
@click.option("--progress/--no-progress", default=True, help="Show live search progress.")
@click.pass_obj
@handle_errors
def search(rounds_file: RoundsFile, client_seed: str, nonce: int, tiles: str | None, progress: bool):
    """Search for a server seed reproducing a layout or all saved rounds."""
    require_seed("client_seed", client_seed)
    if tiles:
        target = single_target(nonce, tiles)
        click.echo(f"Starting search for nonce {nonce} with mines at {format_tiles(target.layout)}...")
    else:
        rounds = rounds_file.load()
        if not rounds:
            raise click.UsageError("No saved rounds. Pass --tiles or add rounds with `grid-mapper rounds add`.")
        target = MultiTarget(rounds=tuple(rounds))
        click.echo(f"Starting search for a seed to match all {len(rounds)} saved rounds...")

    result = run_search(client_seed, target, live=progress)

    if not result.found:
        click.echo(f"Search canceled after {result.attempts} attempts.")
        return

    click.echo(f"Match found after {result.attempts} attempts!")
    click.echo(f"Server seed: {result.server_seed}")
    if result.layout is not None:
        click.echo(f"Mines at: {format_tiles(result.layout)}")
    else:
        click.echo(f"This seed satisfies all {target.rounds_total} saved rounds.")
    rounds_file.save_last_seed(result.server_seed)


@cli.command("last-seed")
@click.pass_obj
def last_seed(rounds_file: RoundsFile):
    """Print the last server seed found by a search."""
    seed = rounds_file.load_last_seed()
    if seed is None:
        raise click.ClickException("No seed has been matched yet.")
    click.echo(seed)


@cli.group()
def rounds():
    """Manage saved rounds."""


@rounds.command("list")
@click.pass_obj
@handle_errors
def rounds_list(rounds_file: RoundsFile):
    """List saved rounds, newest first."""
    saved = rounds_file.load()
    if not saved:
        click.echo("No rounds have been saved yet.")
        return
    for index, saved_round in enumerate(saved):
        click.echo(
            f"#{index}  Round {len(saved) - index}  Nonce: {saved_round.nonce}  "
            f"Mines: {saved_round.mines}  Selected Tiles: {format_tiles(saved_round.selected_tiles)}"
        )


@rounds.command("add")
@nonce_option
@click.option("--tiles", "-t", required=True, help="Tiles that were mines, e.g. \"3,7,12\".")
@click.pass_obj
@handle_errors
def rounds_add(rounds_file: RoundsFile, nonce: int, tiles: str):
    """Save a round. The mine count is the number of tiles."""
    saved_round = SavedRound.from_tiles(nonce, tiles)
    if saved_round.mines == 0:
        raise click.UsageError("Select at least one tile to save a round.")
    rounds_file.add(saved_round)
    click.echo(f"Round saved (Mines: {saved_round.mines}, Nonce: {saved_round.nonce}). Next nonce: {nonce + 1}")


@rounds.command("remove")
@click.argument("index", type=click.IntRange(min=0))
@click.pass_obj
@handle_errors
def rounds_remove(rounds_file: RoundsFile, index: int):
    """Delete the saved round at INDEX (see `rounds list`)."""
    removed = rounds_file.remove(index)
    click.echo(f"Round deleted (Mines: {removed.mines}, Nonce: {removed.nonce}).")


@rounds.command("clear")
@click.confirmation_option(prompt="Delete all saved rounds?")
@click.pass_obj
@handle_errors
def rounds_clear(rounds_file: RoundsFile):
    """Delete all saved rounds."""
    rounds_file.clear()
    click.echo("All saved rounds deleted.")


if __name__ == "__main__":
    cli()
