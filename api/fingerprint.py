"""Fixed-length perceptual fingerprints and the Hamming distance between them.

A fingerprint is a pair of 64-bit hashes computed from one image:

- gradient_hash (dHash): local luminance gradients, robust to brightness shifts
- mean_hash (pHash): comparison against the global mean, robust to rescaling

Hashes are stored as unsigned integers. The first bit emitted by the hasher
(row 0, column 0 of the sample grid) is the most significant bit, so the
bit-string form reads in the same row-major order the hasher produced it.
"""
import re
from dataclasses import dataclass

from config import HASH_BITS

_HASH_MASK = (1 << HASH_BITS) - 1
_HEX_DIGITS = HASH_BITS // 4
_BITSTRING_RE = re.compile(r"^[01]+$")
_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")


class MalformedFingerprintError(ValueError):
    """Raised when a hash is not exactly HASH_BITS bits wide."""


def _check_hash(name: str, value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise MalformedFingerprintError(f"{name} must be an int, got {type(value).__name__}")
    if value < 0 or value > _HASH_MASK:
        raise MalformedFingerprintError(f"{name} does not fit in {HASH_BITS} bits")
    return value


def bits_to_int(bits: str) -> int:
    """Parse a "0"/"1" string of exactly HASH_BITS characters."""
    if not isinstance(bits, str) or len(bits) != HASH_BITS or not _BITSTRING_RE.match(bits):
        length = len(bits) if isinstance(bits, str) else "n/a"
        raise MalformedFingerprintError(
            f"Expected a {HASH_BITS}-character bit string, got length {length}"
        )
    return int(bits, 2)


def int_to_bits(value: int) -> str:
    return format(_check_hash("hash", value), f"0{HASH_BITS}b")


def hex_to_int(text: str) -> int:
    if not isinstance(text, str) or len(text) != _HEX_DIGITS or not _HEX_RE.match(text):
        raise MalformedFingerprintError(f"Expected {_HEX_DIGITS} hex digits, got {text!r}")
    return int(text, 16)


def int_to_hex(value: int) -> str:
    return format(_check_hash("hash", value), f"0{_HEX_DIGITS}x")


@dataclass(frozen=True)
class Fingerprint:
    """Gradient and mean hashes of one image, each exactly HASH_BITS bits."""
    gradient_hash: int
    mean_hash: int

    def __post_init__(self):
        _check_hash("gradient_hash", self.gradient_hash)
        _check_hash("mean_hash", self.mean_hash)

    @classmethod
    def from_bitstrings(cls, gradient: str, mean: str) -> "Fingerprint":
        return cls(gradient_hash=bits_to_int(gradient), mean_hash=bits_to_int(mean))

    @classmethod
    def from_hex(cls, gradient: str, mean: str) -> "Fingerprint":
        return cls(gradient_hash=hex_to_int(gradient), mean_hash=hex_to_int(mean))

    def to_bitstrings(self) -> tuple[str, str]:
        return int_to_bits(self.gradient_hash), int_to_bits(self.mean_hash)

    def to_hex(self) -> tuple[str, str]:
        return int_to_hex(self.gradient_hash), int_to_hex(self.mean_hash)

    def to_dict(self) -> dict:
        gradient_bits, mean_bits = self.to_bitstrings()
        gradient_hex, mean_hex = self.to_hex()
        return {
            "gradient_hash": gradient_bits,
            "mean_hash": mean_bits,
            "gradient_hex": gradient_hex,
            "mean_hex": mean_hex,
        }


def hamming_distance(a: int, b: int) -> int:
    """Number of differing bits between two HASH_BITS-wide hashes."""
    return bin(_check_hash("a", a) ^ _check_hash("b", b)).count("1")


def hamming_distance_bits(a: str, b: str) -> int:
    """Hamming distance between two bit strings.

    Both strings must be exactly HASH_BITS long. Shorter or longer inputs are
    rejected rather than compared over a common prefix, since callers normalize
    by HASH_BITS.
    """
    return hamming_distance(bits_to_int(a), bits_to_int(b))
