from dataclasses import dataclass
import threading
import time
from typing import List, Optional, Sequence, Tuple, Union

import structlog

from grid_mapper.mines import MINES_GAME_TILES_COUNT, calculate_mines_positions, validate_mine_count
from grid_mapper.rounds import SavedRound
from grid_mapper.state_queue import SingleSlotQueue
from grid_mapper.state_snapshot import SearchResult, SearchSnapshot, SearchStatus
from grid_mapper.utils import (
    CandidateSourceFn,
    InvalidParameterError,
    SearchInProgressError,
    generate_server_seed,
    parse_tiles,
    require_non_negative_int,
    require_seed,
)


log = structlog.get_logger()

SEARCH_YIELD_INTERVAL = 500


@dataclass(frozen=True, slots=True)
class SingleTarget:
    """One layout observed for a nonce."""

    nonce: int
    mines: int
    layout: Tuple[int, ...]

    def __post_init__(self):
        require_non_negative_int("nonce", self.nonce)
        validate_mine_count(self.mines)
        layout = tuple(parse_tiles(self.layout, tile_count=MINES_GAME_TILES_COUNT))
        if len(layout) != self.mines:
            raise InvalidParameterError(f"Target has {len(layout)} tiles but mines={self.mines}")
        object.__setattr__(self, "layout", layout)

    @property
    def rounds_total(self) -> int:
        return 1

    def matches(self, server_seed: str, client_seed: str) -> bool:
        positions = calculate_mines_positions(server_seed, client_seed, self.nonce, self.mines)
        return tuple(positions) == self.layout


@dataclass(frozen=True, slots=True)
class MultiTarget:
    """Saved rounds that a single server seed must reproduce together."""

    rounds: Tuple[SavedRound, ...]

    def __post_init__(self):
        rounds = tuple(self.rounds)
        if not rounds:
            raise InvalidParameterError("Multi-round search needs at least one saved round")
        for saved_round in rounds:
            if not isinstance(saved_round, SavedRound):
                raise InvalidParameterError(f"Expected SavedRound, got {type(saved_round).__name__}")
        object.__setattr__(self, "rounds", rounds)

    @property
    def rounds_total(self) -> int:
        return len(self.rounds)

    def matches(self, server_seed: str, client_seed: str) -> bool:
        for saved_round in self.rounds:
            positions = calculate_mines_positions(server_seed, client_seed, saved_round.nonce, saved_round.mines)
            if tuple(positions) != saved_round.selected_tiles:
                return False
        return True


SearchTarget = Union[SingleTarget, MultiTarget]


def as_search_target(target: Union[SearchTarget, Sequence[SavedRound]]) -> SearchTarget:
    """Accept a target object or a plain list of saved rounds."""
    if isinstance(target, (SingleTarget, MultiTarget)):
        return target
    if isinstance(target, (list, tuple)):
        return MultiTarget(rounds=tuple(target))
    raise InvalidParameterError(f"Unsupported search target: {type(target).__name__}")


class SeedSearchEngine:
    """
    Brute-force server seeds until one reproduces the target layout(s).
    - One search at a time per engine; cancel() is cooperative and is
      observed once per attempt.
    - Every yield_interval attempts a progress snapshot is published and the
      thread yields.
    """

    def __init__(self, yield_interval: int = SEARCH_YIELD_INTERVAL) -> None:
        if yield_interval < 1:
            raise InvalidParameterError("yield_interval must be at least 1")
        self.yield_interval = yield_interval
        self._lock = threading.Lock()
        self._status = SearchStatus.IDLE
        self._cancel_event: Optional[threading.Event] = None

    @property
    def status(self) -> SearchStatus:
        with self._lock:
            return self._status

    def cancel(self) -> None:
        """Ask the active search to stop after its current attempt.

        Does nothing while idle. To cancel a run before it starts, pass a
        pre-set cancel_event to search().
        """
        with self._lock:
            if self._cancel_event is not None:
                self._cancel_event.set()

    def search(
        self,
        client_seed: str,
        target: Union[SearchTarget, Sequence[SavedRound]],
        candidate_source: CandidateSourceFn = generate_server_seed,
        *,
        state_queue: Optional[SingleSlotQueue[SearchSnapshot]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> SearchResult:
        cancel_event = cancel_event if cancel_event is not None else threading.Event()

        # Validate everything before claiming the engine or drawing a candidate.
        try:
            require_seed("client_seed", client_seed)
            search_target = as_search_target(target)

            with self._lock:
                if self._status is SearchStatus.SEARCHING:
                    raise SearchInProgressError("A search is already running on this engine")
                self._status = SearchStatus.SEARCHING
                self._cancel_event = cancel_event
        except Exception:
            if state_queue is not None:
                state_queue.close()
            raise

        try:
            return self._run(client_seed, search_target, candidate_source, state_queue, cancel_event)
        finally:
            with self._lock:
                self._status = SearchStatus.IDLE
                self._cancel_event = None
            if state_queue is not None:
                # Always close the queue so the UI can exit
                state_queue.close()

    def _run(
        self,
        client_seed: str,
        target: SearchTarget,
        candidate_source: CandidateSourceFn,
        state_queue: Optional[SingleSlotQueue[SearchSnapshot]],
        cancel_event: threading.Event,
    ) -> SearchResult:
        attempts = 0
        version = 0
        started = time.monotonic()

        def publish(status: SearchStatus, **kwargs) -> None:
            nonlocal version
            if state_queue is None:
                return
            version += 1
            state_queue.publish(SearchSnapshot(
                version=version,
                status=status,
                attempts=attempts,
                rounds_total=target.rounds_total,
                client_seed=client_seed,
                elapsed=time.monotonic() - started,
                **kwargs,
            ))

        log.info("search started", client_seed=client_seed, rounds=target.rounds_total)
        publish(SearchStatus.SEARCHING)

        try:
            while not cancel_event.is_set():
                attempts += 1
                candidate = candidate_source()
                if target.matches(candidate, client_seed):
                    layout = target.layout if isinstance(target, SingleTarget) else None
                    log.info("search found", attempts=attempts, server_seed=candidate)
                    publish(SearchStatus.FOUND, server_seed=candidate, layout=layout or ())
                    return SearchResult(SearchStatus.FOUND, attempts, server_seed=candidate, layout=layout)

                if attempts % self.yield_interval == 0:
                    log.debug("search progress", attempts=attempts)
                    publish(SearchStatus.SEARCHING)
                    time.sleep(0)
        except Exception as e:
            log.error("search failed", attempts=attempts, error=str(e))
            publish(SearchStatus.FAILED, error=str(e))
            raise

        log.info("search cancelled", attempts=attempts)
        publish(SearchStatus.CANCELLED)
        return SearchResult(SearchStatus.CANCELLED, attempts)


def search(
    client_seed: str,
    target: Union[SearchTarget, Sequence[SavedRound]],
    candidate_source: CandidateSourceFn = generate_server_seed,
    **kwargs,
) -> SearchResult:
    """Run one search on a fresh engine."""
    return SeedSearchEngine().search(client_seed, target, candidate_source, **kwargs)


def single_target(nonce: int, tiles: Union[str, List[int]]) -> SingleTarget:
    layout = parse_tiles(tiles)
    return SingleTarget(nonce=nonce, mines=len(layout), layout=tuple(layout))
