from dataclasses import dataclass

from cryptography.hazmat.primitives import hashes, hmac
import structlog

from grid_mapper.utils import FatalCryptoError, require_non_negative_int, require_seed


log = structlog.get_logger()

HMAC_DIGEST_SIZE = 32
FLOAT_BYTE_COUNT = 4


@dataclass(frozen=True, slots=True)
class RNGParameters:
    """Seed pair and nonce that fully determine one outcome."""

    server_seed: str
    client_seed: str
    nonce: int

    def __post_init__(self):
        require_seed("server_seed", self.server_seed)
        require_seed("client_seed", self.client_seed)
        require_non_negative_int("nonce", self.nonce)


class ByteStream:
    """Infinite byte stream made of HMAC-SHA256 digests.

    Round r emits HMAC(server_seed, f"{client_seed}:{nonce}:{r}") byte by byte,
    then the next round is computed. Nothing is computed until the first byte
    is pulled.
    """

    def __init__(self, params: RNGParameters) -> None:
        self._params = params
        self._mac = None
        self._buffer = b""
        self._offset = 0
        self.rounds = 0
        self.bytes_read = 0

    def _digest(self, current_round: int) -> bytes:
        message = f"{self._params.client_seed}:{self._params.nonce}:{current_round}"
        try:
            if self._mac is None:
                self._mac = hmac.HMAC(self._params.server_seed.encode("utf-8"), hashes.SHA256())
            h = self._mac.copy()
            h.update(message.encode("utf-8"))
            digest = h.finalize()
        except Exception as e:
            log.error("hmac digest failed", round=current_round, error=str(e))
            raise FatalCryptoError(f"HMAC-SHA256 failed at round {current_round}: {e}") from e

        if len(digest) != HMAC_DIGEST_SIZE:
            raise FatalCryptoError(f"Unexpected digest length {len(digest)} at round {current_round}")
        return digest

    def next(self) -> int:
        if self._offset >= len(self._buffer):
            self._buffer = self._digest(self.rounds)
            self._offset = 0
            self.rounds += 1

        value = self._buffer[self._offset]
        self._offset += 1
        self.bytes_read += 1
        return value

    def __iter__(self):
        return self

    def __next__(self) -> int:
        return self.next()


class FloatStream:
    """Floats in [0, 1), four bytes each, most significant byte first."""

    def __init__(self, params: RNGParameters) -> None:
        self.byte_stream = ByteStream(params)
        self.floats_read = 0

    def next(self) -> float:
        # Accumulation order matters for bit-compatibility with other verifiers.
        result = 0.0
        for i in range(FLOAT_BYTE_COUNT):
            result = result + self.byte_stream.next() / 256 ** (i + 1)
        self.floats_read += 1
        return result

    def __iter__(self):
        return self

    def __next__(self) -> float:
        return self.next()
