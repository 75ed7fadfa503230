import pytest

from grid_mapper.utils import (
    InvalidParameterError,
    format_tiles,
    generate_server_seed,
    parse_tiles,
    sha256_hex,
)


class TestSeeds:

    def test_generate_server_seed(self):
        seed = generate_server_seed()
        assert len(seed) == 64
        int(seed, 16)
        assert seed != generate_server_seed()

    def test_sha256_hex(self):
        assert sha256_hex("abc") == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"


class TestParseTiles:
    """Test suite for parse_tiles"""

    @pytest.mark.parametrize("selection, expected", [
        ("13,16,24", [13, 16, 24]),
        ("24 13, 16", [13, 16, 24]),
        ("", []),
        ([3, 0], [0, 3]),
        ((), []),
    ])
    def test_valid(self, selection, expected):
        assert parse_tiles(selection) == expected

    @pytest.mark.parametrize("selection", ["1,x", "25", "-1", "3,3", [1.5], [True]])
    def test_invalid(self, selection):
        with pytest.raises(InvalidParameterError):
            parse_tiles(selection)

    def test_format_tiles(self):
        assert format_tiles([13, 16, 24]) == "[13, 16, 24]"
        assert format_tiles([]) == "[]"
