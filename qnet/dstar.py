"""Golay (24,12) decoding of the FEC protected part of D-STAR voice frames."""

from __future__ import annotations

from functools import lru_cache
from itertools import combinations

X22 = 0x00400000
X11 = 0x00000800
MASK12 = 0xFFFFF800
GENPOL = 0x00000C75

# (word, bit) destination of each of the 72 frame bits, in transmission order.
_BIT_POSITIONS = tuple(
    ((i % 6) // 2, (23 if i % 2 == 0 else 11) - i // 6) for i in range(72)
)


def get_syndrome(pattern: int) -> int:
    """Remainder of a 23-bit pattern divided by the Golay generator polynomial."""
    if not 0 <= pattern < 1 << 23:
        raise ValueError(f"pattern {pattern:#x} is not a 23-bit value")
    aux = X22
    if pattern >= X11:
        while pattern & MASK12:
            while not aux & pattern:
                aux >>= 1
            pattern ^= (aux // X11) * GENPOL
    return pattern


@lru_cache(maxsize=1)
def _tables() -> tuple[tuple[int, ...], tuple[int, ...]]:
    decoding = [0] * 2048
    for weight in (1, 2, 3):
        for positions in combinations(range(23), weight):
            error = sum(1 << p for p in positions)
            decoding[get_syndrome(error)] = error

    prng = []
    for seed in range(4096):
        value = 0
        pr = seed << 4
        for bit in range(23, -1, -1):
            pr = (173 * pr + 13849) & 0xFFFF
            if pr & 0x8000:
                value |= 1 << bit
        prng.append(value)
    return tuple(decoding), tuple(prng)


class DStarDecoder:
    """Decodes the first two Golay protected words of a 9-byte AMBE frame."""

    def __init__(self) -> None:
        self.decoding_table, self.prng = _tables()

    def golay2412(self, data: int) -> tuple[int, int]:
        """Correct a 24-bit Golay word; return (12-bit data, bit errors)."""
        block = (data >> 1) & 0x7FFFFF
        corrected = block ^ self.decoding_table[get_syndrome(block)]
        errors = bin(block ^ corrected).count("1")
        if bin(corrected).count("1") & 1 != data & 1:
            errors += 1
        return corrected >> 11, errors

    def decode(self, frame: bytes) -> tuple[int, tuple[int, int, int]]:
        """Return (bit errors, (word0, word1, word2)) for a voice frame."""
        if len(frame) < 9:
            raise ValueError("a voice frame needs at least 9 bytes")
        bits = [0, 0, 0]
        for i, (word, bit) in enumerate(_BIT_POSITIONS):
            if frame[i >> 3] & (0x80 >> (i & 7)):
                bits[word] |= 1 << bit
        first, errs0 = self.golay2412(bits[0])
        second, errs1 = self.golay2412(bits[1] ^ self.prng[first & 0x0FFF])
        return errs0 + errs1, (first, second, bits[2])