import pathlib
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, StrictInt, TypeAdapter, ValidationError, field_validator, model_validator
import structlog

from grid_mapper.mines import MINES_GAME_TILES_COUNT
from grid_mapper.utils import RoundsFileError, TileSpec, parse_tiles


log = structlog.get_logger()

DEFAULT_HOME = pathlib.Path.home() / ".grid-mapper"
ROUNDS_FILENAME = "rounds.json"
LAST_SEED_FILENAME = "last_matched_seed"


class SavedRound(BaseModel):
    """A committed selection: the tiles a user saw as mines for one nonce."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    mines: StrictInt = Field(ge=0, le=MINES_GAME_TILES_COUNT)
    nonce: StrictInt = Field(ge=0)
    selected_tiles: Tuple[StrictInt, ...] = Field(alias="selectedTiles")

    @field_validator("selected_tiles")
    @classmethod
    def _valid_layout(cls, tiles: Tuple[int, ...]) -> Tuple[int, ...]:
        return tuple(parse_tiles(tiles))

    @model_validator(mode="after")
    def _mines_match_tiles(self) -> "SavedRound":
        if len(self.selected_tiles) != self.mines:
            raise ValueError(f"mines={self.mines} but {len(self.selected_tiles)} tiles selected")
        return self

    @classmethod
    def from_tiles(cls, nonce: int, tiles: TileSpec) -> "SavedRound":
        layout = parse_tiles(tiles)
        return cls(mines=len(layout), nonce=nonce, selected_tiles=tuple(layout))


ROUNDS_ADAPTER = TypeAdapter(List[SavedRound])


class RoundsFile:
    """Saved rounds kept as one JSON array, newest first."""

    def __init__(self, home: pathlib.Path = DEFAULT_HOME) -> None:
        self.home = pathlib.Path(home)
        self.path = self.home / ROUNDS_FILENAME

    def load(self) -> List[SavedRound]:
        if not self.path.exists():
            return []
        try:
            data = self.path.read_bytes()
            return ROUNDS_ADAPTER.validate_json(data)
        except (OSError, ValidationError) as e:
            log.error("could not load saved rounds", path=str(self.path), error=str(e))
            raise RoundsFileError(f"Could not load saved rounds from {self.path}: {e}") from e

    def save(self, rounds: List[SavedRound]) -> None:
        self.home.mkdir(parents=True, exist_ok=True)
        self.path.write_bytes(ROUNDS_ADAPTER.dump_json(rounds, by_alias=True, indent=2))
        log.debug("saved rounds written", path=str(self.path), count=len(rounds))

    def add(self, saved_round: SavedRound) -> List[SavedRound]:
        rounds = [saved_round] + self.load()
        self.save(rounds)
        return rounds

    def remove(self, index: int) -> SavedRound:
        rounds = self.load()
        if not 0 <= index < len(rounds):
            raise RoundsFileError(f"No saved round at index {index} ({len(rounds)} saved)")
        removed = rounds.pop(index)
        self.save(rounds)
        return removed

    def clear(self) -> None:
        self.save([])

    def load_last_seed(self) -> Optional[str]:
        path = self.home / LAST_SEED_FILENAME
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8").strip() or None

    def save_last_seed(self, server_seed: str) -> None:
        self.home.mkdir(parents=True, exist_ok=True)
        (self.home / LAST_SEED_FILENAME).write_text(server_seed + "\n", encoding="utf-8")
