import hashlib
import secrets
from typing import Callable, Iterable, List, Union

CandidateSourceFn = Callable[[], str]

SERVER_SEED_BYTES = 32  # 32 bytes = 64 hex characters

TileSpec = Union[str, Iterable[int]]


class GridMapperError(Exception):
    pass

class InvalidParameterError(GridMapperError, ValueError):
    pass

class FatalCryptoError(GridMapperError, RuntimeError):
    pass

class SearchInProgressError(GridMapperError, RuntimeError):
    pass

class RoundsFileError(GridMapperError):
    pass


def generate_server_seed() -> str:
    """Generate a cryptographically secure 64 character hex server seed."""
    return secrets.token_hex(SERVER_SEED_BYTES)


def sha256_hex(message: str) -> str:
    """Return the hex SHA-256 of a string, i.e. the published server seed hash."""
    return hashlib.sha256(message.encode("utf-8")).hexdigest()


def require_seed(name: str, value: object) -> str:
    if not isinstance(value, str) or not value:
        raise InvalidParameterError(f"{name} must be a non-empty string")
    return value


def require_non_negative_int(name: str, value: object) -> int:
    # bool is an int subclass, but True is never a meaningful nonce.
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidParameterError(f"{name} must be an integer, got {type(value).__name__}")
    if value < 0:
        raise InvalidParameterError(f"{name} must be non-negative, got {value}")
    return value


def parse_tiles(selection: TileSpec, *, tile_count: int = 25) -> List[int]:
    """Parse tiles such as "3, 7 12" or [3, 7, 12] into a sorted layout."""
    if isinstance(selection, str):
        parts = selection.replace(",", " ").split()
        try:
            tiles = [int(p) for p in parts]
        except ValueError as e:
            raise InvalidParameterError(f"Invalid tile list: {selection!r}") from e
    else:
        tiles = list(selection)

    for tile in tiles:
        if isinstance(tile, bool) or not isinstance(tile, int):
            raise InvalidParameterError(f"Tile must be an integer, got {tile!r}")
        if not 0 <= tile < tile_count:
            raise InvalidParameterError(f"Tile {tile} is outside the board (0..{tile_count - 1})")
    if len(set(tiles)) != len(tiles):
        raise InvalidParameterError(f"Duplicate tiles in {sorted(tiles)}")
    return sorted(tiles)


def format_tiles(tiles: Iterable[int]) -> str:
    return "[" + ", ".join(str(t) for t in tiles) + "]"
