from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple


class SearchStatus(str, Enum):
    IDLE = "idle"
    SEARCHING = "searching"
    FOUND = "found"
    CANCELLED = "cancelled"
    FAILED = "failed"

    def __str__(self):
        return self.value


@dataclass(frozen=True, slots=True)
class SearchSnapshot:
    """Immutable view of a search run, published for the UI."""

    version: int
    status: SearchStatus
    attempts: int
    rounds_total: int
    client_seed: str
    elapsed: float = 0.0
    server_seed: Optional[str] = None
    layout: Tuple[int, ...] = field(default_factory=tuple)
    error: Optional[str] = None

    @property
    def complete(self) -> bool:
        return self.status in (SearchStatus.FOUND, SearchStatus.CANCELLED, SearchStatus.FAILED)

    @property
    def rate(self) -> float:
        """Attempts per second so far."""
        if self.elapsed <= 0:
            return 0.0
        return self.attempts / self.elapsed


@dataclass(frozen=True, slots=True)
class SearchResult:
    status: SearchStatus
    attempts: int
    server_seed: Optional[str] = None
    layout: Optional[Tuple[int, ...]] = None

    @property
    def found(self) -> bool:
        return self.status is SearchStatus.FOUND
