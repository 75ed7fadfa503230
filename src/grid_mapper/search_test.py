from concurrent.futures import ThreadPoolExecutor
import itertools
import threading
import time

import pytest

from grid_mapper.mines import calculate_mines_positions
from grid_mapper.rounds import SavedRound
from grid_mapper.search import MultiTarget, SeedSearchEngine, SingleTarget, search, single_target
from grid_mapper.state_queue import SingleSlotQueue
from grid_mapper.state_snapshot import SearchSnapshot, SearchStatus
from grid_mapper.utils import InvalidParameterError, SearchInProgressError, generate_server_seed

CLIENT_SEED = "xproject"

# Layouts produced by server seed "abc".
ABC_ROUNDS = [
    SavedRound(mines=3, nonce=1, selected_tiles=(13, 16, 24)),
    SavedRound(mines=5, nonce=2, selected_tiles=(6, 8, 13, 21, 24)),
    SavedRound(mines=5, nonce=3, selected_tiles=(7, 8, 11, 14, 22)),
]
NOT_ABC_ROUND = SavedRound(mines=3, nonce=4, selected_tiles=(0, 1, 2))


class CountingSource:
    """Candidate source that cycles through seeds and can cancel after N calls."""

    def __init__(self, seeds, cancel_after=None, cancel_event=None):
        self._seeds = itertools.cycle(seeds)
        self.calls = 0
        self.cancel_after = cancel_after
        self.cancel_event = cancel_event

    def __call__(self) -> str:
        self.calls += 1
        if self.cancel_after is not None and self.calls >= self.cancel_after:
            self.cancel_event.set()
        return next(self._seeds)


class TestTargets:
    """Test suite for SingleTarget and MultiTarget"""

    def test_single_target_sorts_layout(self):
        target = SingleTarget(nonce=1, mines=3, layout=(24, 13, 16))
        assert target.layout == (13, 16, 24)
        assert target.matches("abc", CLIENT_SEED)

    def test_single_target_mismatch(self):
        assert not single_target(1, [0, 1, 2]).matches("abc", CLIENT_SEED)

    @pytest.mark.parametrize("kwargs", [
        {"nonce": 1, "mines": 3, "layout": (1, 2)},
        {"nonce": 1, "mines": 2, "layout": (1, 1)},
        {"nonce": 1, "mines": 1, "layout": (25,)},
        {"nonce": -1, "mines": 1, "layout": (3,)},
        {"nonce": 1, "mines": 26, "layout": tuple(range(25))},
    ])
    def test_single_target_invalid(self, kwargs):
        with pytest.raises(InvalidParameterError):
            SingleTarget(**kwargs)

    def test_multi_target_all_rounds(self):
        assert MultiTarget(rounds=tuple(ABC_ROUNDS)).matches("abc", CLIENT_SEED)

    def test_multi_target_rejects_partial_match(self):
        """A seed satisfying k-1 of k rounds is not a match."""
        target = MultiTarget(rounds=tuple(ABC_ROUNDS) + (NOT_ABC_ROUND,))
        assert target.rounds_total == 4
        assert not target.matches("abc", CLIENT_SEED)

    def test_multi_target_short_circuits(self, monkeypatch):
        calls = []

        def fake_positions(server_seed, client_seed, nonce, mines):
            calls.append(nonce)
            return calculate_mines_positions(server_seed, client_seed, nonce, mines)

        monkeypatch.setattr("grid_mapper.search.calculate_mines_positions", fake_positions)
        target = MultiTarget(rounds=(NOT_ABC_ROUND,) + tuple(ABC_ROUNDS))
        assert not target.matches("abc", CLIENT_SEED)
        assert calls == [4]

    def test_multi_target_needs_rounds(self):
        with pytest.raises(InvalidParameterError):
            MultiTarget(rounds=())


class TestSeedSearchEngine:
    """Test suite for SeedSearchEngine"""

    def test_round_trip_single_target(self):
        seed = generate_server_seed()
        layout = calculate_mines_positions(seed, CLIENT_SEED, 5, 4)
        target = SingleTarget(nonce=5, mines=4, layout=tuple(layout))

        result = SeedSearchEngine().search(CLIENT_SEED, target, lambda: seed)

        assert result.status is SearchStatus.FOUND
        assert result.attempts == 1
        assert result.server_seed == seed
        assert result.layout == tuple(layout)

    def test_finds_after_misses(self):
        source = CountingSource(["nope-1", "nope-2", "nope-3", "abc"])
        result = search(CLIENT_SEED, ABC_ROUNDS, source)
        assert result.found
        assert result.attempts == 4
        assert result.server_seed == "abc"
        assert result.layout is None

    def test_multi_target_rejects_k_minus_one(self):
        cancel_event = threading.Event()
        source = CountingSource(["abc"], cancel_after=50, cancel_event=cancel_event)
        target = ABC_ROUNDS + [NOT_ABC_ROUND]

        result = SeedSearchEngine().search(CLIENT_SEED, target, source, cancel_event=cancel_event)

        assert result.status is SearchStatus.CANCELLED
        assert result.attempts == 50
        assert result.server_seed is None

    def test_cancel_before_start(self):
        cancel_event = threading.Event()
        cancel_event.set()
        source = CountingSource(["abc"])

        result = SeedSearchEngine().search(CLIENT_SEED, ABC_ROUNDS, source, cancel_event=cancel_event)

        assert result.status is SearchStatus.CANCELLED
        assert result.attempts == 0
        assert source.calls == 0

    def test_attempt_in_flight_completes(self):
        """A cancel raised during an attempt still lets a match in that attempt win."""
        cancel_event = threading.Event()
        source = CountingSource(["abc"], cancel_after=1, cancel_event=cancel_event)

        result = SeedSearchEngine().search(CLIENT_SEED, ABC_ROUNDS, source, cancel_event=cancel_event)

        assert result.found
        assert result.attempts == 1

    def test_invalid_target_consumes_no_candidates(self):
        source = CountingSource(["abc"])
        engine = SeedSearchEngine()
        with pytest.raises(InvalidParameterError):
            engine.search(CLIENT_SEED, [], source)
        with pytest.raises(InvalidParameterError):
            engine.search("", ABC_ROUNDS, source)
        with pytest.raises(InvalidParameterError):
            engine.search(CLIENT_SEED, "13,16,24", source)
        assert source.calls == 0
        assert engine.status is SearchStatus.IDLE

    @pytest.mark.parametrize("client_seed, target", [
        ("", ABC_ROUNDS),
        (CLIENT_SEED, []),
        (CLIENT_SEED, "13,16,24"),
    ])
    def test_invalid_arguments_close_queue(self, client_seed, target):
        """A reader blocked on the queue is released when validation fails."""
        state_queue: SingleSlotQueue[SearchSnapshot] = SingleSlotQueue()
        with pytest.raises(InvalidParameterError):
            SeedSearchEngine().search(client_seed, target, lambda: "abc", state_queue=state_queue)
        assert state_queue.get(timeout=1) is None
        assert state_queue.published == 0

    def test_reentry_closes_nested_queue(self):
        engine = SeedSearchEngine()
        nested_queue: SingleSlotQueue[SearchSnapshot] = SingleSlotQueue()

        def nested_source():
            return engine.search(CLIENT_SEED, ABC_ROUNDS, lambda: "abc", state_queue=nested_queue)

        with pytest.raises(SearchInProgressError):
            engine.search(CLIENT_SEED, ABC_ROUNDS, nested_source)
        assert nested_queue.get(timeout=1) is None

    def test_bad_candidate_is_fatal(self):
        engine = SeedSearchEngine()
        state_queue: SingleSlotQueue[SearchSnapshot] = SingleSlotQueue()

        with pytest.raises(InvalidParameterError):
            engine.search(CLIENT_SEED, ABC_ROUNDS, lambda: "", state_queue=state_queue)

        snapshot = state_queue.get(timeout=1)
        assert snapshot.status is SearchStatus.FAILED
        assert snapshot.attempts == 1
        assert state_queue.get(timeout=1) is None
        assert engine.status is SearchStatus.IDLE

    def test_reentry_rejected(self):
        engine = SeedSearchEngine()

        def nested_source():
            return engine.search(CLIENT_SEED, ABC_ROUNDS, lambda: "abc")

        with pytest.raises(SearchInProgressError):
            engine.search(CLIENT_SEED, ABC_ROUNDS, nested_source)
        assert engine.status is SearchStatus.IDLE

    def test_engine_reusable(self):
        engine = SeedSearchEngine()
        first = engine.search(CLIENT_SEED, ABC_ROUNDS, lambda: "abc")
        second = engine.search(CLIENT_SEED, ABC_ROUNDS, lambda: "abc")
        assert first == second

    def test_progress_snapshots(self):
        engine = SeedSearchEngine(yield_interval=2)
        state_queue: SingleSlotQueue[SearchSnapshot] = SingleSlotQueue()
        cancel_event = threading.Event()
        source = CountingSource(["abc"], cancel_after=5, cancel_event=cancel_event)

        result = engine.search(
            CLIENT_SEED, [NOT_ABC_ROUND], source,
            state_queue=state_queue, cancel_event=cancel_event,
        )

        assert result.attempts == 5
        # start, attempts 2 and 4, cancelled
        assert state_queue.published == 4
        final = state_queue.get(timeout=1)
        assert final.status is SearchStatus.CANCELLED
        assert final.complete
        assert final.attempts == 5
        assert final.version == 4
        assert final.rounds_total == 1
        assert state_queue.get(timeout=1) is None

    def test_found_snapshot_carries_seed(self):
        state_queue: SingleSlotQueue[SearchSnapshot] = SingleSlotQueue()
        search(CLIENT_SEED, single_target(1, "13,16,24"), lambda: "abc", state_queue=state_queue)

        final = state_queue.get(timeout=1)
        assert final.status is SearchStatus.FOUND
        assert final.server_seed == "abc"
        assert final.layout == (13, 16, 24)

    def test_cancel_from_another_thread(self):
        engine = SeedSearchEngine()

        with ThreadPoolExecutor(max_workers=1) as executor:
            future = executor.submit(engine.search, CLIENT_SEED, [NOT_ABC_ROUND], lambda: "abc")
            deadline = time.monotonic() + 5
            while engine.status is not SearchStatus.SEARCHING and time.monotonic() < deadline:
                time.sleep(0.001)
            engine.cancel()
            result = future.result(timeout=5)

        assert result.status is SearchStatus.CANCELLED
        assert engine.status is SearchStatus.IDLE

    def test_cancel_when_idle_is_noop(self):
        """cancel() does not carry over to the next run; a pre-set event does."""
        engine = SeedSearchEngine()
        engine.cancel()
        assert engine.search(CLIENT_SEED, ABC_ROUNDS, lambda: "abc").found

        cancel_event = threading.Event()
        cancel_event.set()
        result = engine.search(CLIENT_SEED, ABC_ROUNDS, lambda: "abc", cancel_event=cancel_event)
        assert result.status is SearchStatus.CANCELLED
        assert result.attempts == 0

    def test_invalid_yield_interval(self):
        with pytest.raises(InvalidParameterError):
            SeedSearchEngine(yield_interval=0)
