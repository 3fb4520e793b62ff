"""A small in-memory BWT for short texts, with occurrence checkpoints every
16 rows.

Nucleotides are coded 0..3; the text may not hold ambiguous bases.  As in
:mod:`bwtkit.bwt`, ``-1`` stands for the row before the first one, so
``occ(-1, c)`` is 0.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from bwtkit.bwt import _encode, _suffix_array

_CHECKPOINT_SHIFT = 4
_CHECKPOINT = 1 << _CHECKPOINT_SHIFT


@dataclass(frozen=True)
class LiteBWT:
    """BWT of a short text together with its full suffix array.

    ``codes`` is the BWT string with the terminator (at row ``primary``)
    removed; ``sa`` has ``seq_len + 1`` entries, one per row.
    """

    seq_len: int
    primary: int
    codes: bytes
    sa: tuple[int, ...]
    L2: tuple[int, int, int, int, int]
    _checkpoints: tuple[tuple[int, int, int, int], ...] = field(repr=False, compare=False)

    @classmethod
    def from_sequence(cls, seq: str | bytes | Iterable[int]) -> "LiteBWT":
        """Build the BWT and suffix array of ``seq``."""
        text = _encode(seq)
        if any(c > 3 for c in text):
            raise ValueError("sequence contains ambiguous bases")
        order = _suffix_array(text)
        primary = order.index(0)
        codes = bytes(text[i - 1] for i in order if i > 0)

        counts = [0, 0, 0, 0]
        checkpoints = []
        for start in range(0, len(codes), _CHECKPOINT):
            checkpoints.append(tuple(counts))
            for c in range(4):
                counts[c] += codes.count(c, start, start + _CHECKPOINT)

        l2 = [0]
        for c in range(4):
            l2.append(l2[-1] + counts[c])
        return cls(len(text), primary, codes, tuple(order), tuple(l2), tuple(checkpoints))

    def _row_to_code_index(self, k: int) -> int:
        if k > self.seq_len:
            raise IndexError(f"row {k} is beyond the end of the BWT")
        return k - (k >= self.primary)

    def occ(self, k: int, c: int) -> int:
        """Number of ``c`` in BWT rows ``0..k`` inclusive."""
        if k == self.seq_len:
            return self.L2[c + 1] - self.L2[c]
        if k < 0:
            return 0
        k = self._row_to_code_index(k)
        if k < 0:
            return 0
        block = k >> _CHECKPOINT_SHIFT
        return self._checkpoints[block][c] + self.codes.count(c, block << _CHECKPOINT_SHIFT, k + 1)

    def occ4(self, k: int) -> tuple[int, int, int, int]:
        """Occurrences of all four bases in BWT rows ``0..k``."""
        if k < 0:
            return (0, 0, 0, 0)
        k = self._row_to_code_index(k)
        if k < 0:
            return (0, 0, 0, 0)
        block = k >> _CHECKPOINT_SHIFT
        start = block << _CHECKPOINT_SHIFT
        base = self._checkpoints[block]
        return tuple(base[c] + self.codes.count(c, start, k + 1) for c in range(4))

    def two_occ4(
        self, k: int, l: int
    ) -> tuple[tuple[int, int, int, int], tuple[int, int, int, int]]:
        """``occ4`` at two rows at once."""
        return self.occ4(k), self.occ4(l)