import math
from typing import List

from grid_mapper.provably_fair import FloatStream, RNGParameters
from grid_mapper.utils import InvalidParameterError

MINES_GAME_TILES_COUNT = 25
BOARD_COLUMNS = 5


def validate_mine_count(mines: object, tile_count: int = MINES_GAME_TILES_COUNT) -> int:
    if isinstance(mines, bool) or not isinstance(mines, int):
        raise InvalidParameterError(f"Mine count must be an integer, got {type(mines).__name__}")
    if not 0 <= mines <= tile_count:
        raise InvalidParameterError(f"Mine count must be between 0 and {tile_count}, got {mines}")
    return mines


class PositionSampler:
    """Weighted sampling without replacement over the board tiles.

    Each draw picks an index into the tiles still remaining, so removal has to
    keep the remaining tiles in their original order.
    """

    def __init__(self, tile_count: int = MINES_GAME_TILES_COUNT) -> None:
        self.tile_count = tile_count

    def sample(self, floats: FloatStream, mines: int) -> List[int]:
        validate_mine_count(mines, self.tile_count)
        if mines == 0:
            return []

        remaining_positions = list(range(self.tile_count))
        mine_positions = []
        for i in range(mines):
            value = floats.next()
            remaining_count = self.tile_count - i
            relative_position = math.floor(value * remaining_count)
            # list.pop shifts the tail left; never swap-and-pop here.
            absolute_position = remaining_positions.pop(relative_position)
            mine_positions.append(absolute_position)

        return sorted(mine_positions)


def derive_positions(params: RNGParameters, mines: int) -> List[int]:
    """Calculate the sorted mine positions for one round."""
    validate_mine_count(mines)
    return PositionSampler().sample(FloatStream(params), mines)


def calculate_mines_positions(server_seed: str, client_seed: str, nonce: int, mines: int) -> List[int]:
    """Same as derive_positions, taking the seed pair and nonce directly."""
    validate_mine_count(mines)
    params = RNGParameters(server_seed=server_seed, client_seed=client_seed, nonce=nonce)
    return derive_positions(params, mines)


def tile_coordinates(tile: int) -> tuple[int, int]:
    """Row and column of a tile on the 5x5 board."""
    return divmod(tile, BOARD_COLUMNS)
