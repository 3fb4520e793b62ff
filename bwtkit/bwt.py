"""FM-index over a DNA text: occurrence counts, sampled suffix array, exact
matching and bidirectional (SMEM) interval extension.

Nucleotides are coded 0..3 for A, C, G, T; any code above 3 is ambiguous.
The sentinel value ``-1`` plays the role of the unsigned "all ones" value:
``occ(-1, c)`` is 0 and ``sa(0)`` (the suffix starting at the terminator)
is ``-1``.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, replace
from itertools import pairwise
from pathlib import Path
from typing import Iterable, Sequence

OCC_INTV_SHIFT = 7
OCC_INTERVAL = 1 << OCC_INTV_SHIFT
_BASES_PER_WORD = 16
_HEADER = struct.Struct("<5Q")
_SA_HEADER = struct.Struct("<7Q")
_NT4 = {"A": 0, "C": 1, "G": 2, "T": 3}


def _encode(seq: str | bytes | Iterable[int]) -> bytes:
    """Turn a nucleotide string or a sequence of codes into a bytes of codes."""
    if isinstance(seq, str):
        return bytes(_NT4.get(ch, 4) for ch in seq.upper())
    return bytes(seq)


def _suffix_array(text: bytes) -> list[int]:
    """Suffix array of ``text`` followed by a terminator smaller than any code."""
    n = len(text)
    rank = [c + 1 for c in text] + [0]
    order = list(range(n + 1))
    step = 1
    while True:
        def key(i: int, step: int = step) -> tuple[int, int]:
            return rank[i], rank[i + step] if i + step <= n else -1

        order.sort(key=key)
        new_rank = [0] * (n + 1)
        for prev, cur in pairwise(order):
            new_rank[cur] = new_rank[prev] + (key(prev) != key(cur))
        rank = new_rank
        if rank[order[-1]] == n:
            return order
        step <<= 1


@dataclass(frozen=True)
class Interval:
    """A bi-directional SA interval.

    ``x[0]`` is the start on the forward index, ``x[1]`` the start on the
    reverse-complement side and ``x[2]`` the interval size.  ``info`` holds
    query coordinates: ``begin << 32 | end``.
    """

    x: tuple[int, int, int]
    info: int = 0

    @property
    def size(self) -> int:
        return self.x[2]

    @property
    def qbeg(self) -> int:
        return self.info >> 32

    @property
    def qend(self) -> int:
        return self.info & 0xFFFFFFFF


class BWT:
    """Burrows-Wheeler transform of a text with its occurrence checkpoints."""

    def __init__(
        self,
        primary: int,
        l2: Sequence[int],
        codes: bytes,
        sa_intv: int = 0,
        sa: Sequence[int] | None = None,
    ) -> None:
        codes = bytes(codes)
        l2 = tuple(l2)
        if len(l2) != 5 or l2[0] != 0:
            raise ValueError("cumulative counts must have five entries starting at 0")
        if l2[4] != len(codes):
            raise ValueError("cumulative counts do not match the BWT length")
        if not 0 <= primary <= len(codes):
            raise ValueError("primary index out of range")
        self.primary = primary
        self.L2 = l2
        self.codes = codes
        self.seq_len = len(codes)
        self.sa_intv = sa_intv
        self._sa: list[int] | None = list(sa) if sa is not None else None
        self._checkpoints = self._build_checkpoints()

    def _build_checkpoints(self) -> list[tuple[int, int, int, int]]:
        counts = [0, 0, 0, 0]
        checkpoints = []
        for start in range(0, self.seq_len, OCC_INTERVAL):
            checkpoints.append(tuple(counts))
            for c in range(4):
                counts[c] += self.codes.count(c, start, start + OCC_INTERVAL)
        return checkpoints

    # ---------------------------------------------------------------- build

    @classmethod
    def from_sequence(cls, seq: str | bytes | Iterable[int]) -> "BWT":
        """Build the BWT of ``seq`` (codes 0..3 or an ACGT string).

        Bidirectional extension is only meaningful when the text contains
        both strands, e.g. a sequence followed by its reverse complement.
        """
        text = _encode(seq)
        if not text:
            raise ValueError("cannot build a BWT of an empty sequence")
        if any(c > 3 for c in text):
            raise ValueError("sequence contains ambiguous bases")
        order = _suffix_array(text)
        primary = order.index(0)
        codes = bytes(text[i - 1] for i in order if i > 0)
        l2 = [0]
        for c in range(4):
            l2.append(l2[-1] + text.count(c))
        return cls(primary, l2, codes)

    # ------------------------------------------------------------------ I/O

    @classmethod
    def restore(cls, bwt_path: str | Path, sa_path: str | Path | None = None) -> "BWT":
        """Load a BWT file and, if given, its suffix-array file."""
        data = Path(bwt_path).read_bytes()
        if len(data) < _HEADER.size:
            raise ValueError(f"{bwt_path}: truncated BWT header")
        primary, *counts = _HEADER.unpack_from(data)
        n_words = (len(data) - _HEADER.size) >> 2
        words = struct.unpack_from(f"<{n_words}I", data, _HEADER.size)
        seq_len = counts[3]
        codes = bytearray(seq_len)
        pos = 0
        for start in range(0, seq_len, OCC_INTERVAL):
            pos += 8  # four 64-bit checkpoint counts
            n = min(OCC_INTERVAL, seq_len - start)
            n_block_words = (n + _BASES_PER_WORD - 1) // _BASES_PER_WORD
            if pos + n_block_words > n_words:
                raise ValueError(f"{bwt_path}: truncated BWT data")
            for j in range(n):
                word = words[pos + (j >> 4)]
                codes[start + j] = word >> ((15 - (j & 15)) << 1) & 3
            pos += n_block_words
        bwt = cls(primary, [0, *counts], bytes(codes))
        if sa_path is not None:
            bwt.restore_sa(sa_path)
        return bwt

    def _words(self) -> list[int]:
        words: list[int] = []
        for block, start in enumerate(range(0, self.seq_len, OCC_INTERVAL)):
            for cnt in self._checkpoints[block]:
                words.extend((cnt & 0xFFFFFFFF, cnt >> 32))
            chunk = self.codes[start:start + OCC_INTERVAL]
            for ws in range(0, len(chunk), _BASES_PER_WORD):
                word = 0
                for j, c in enumerate(chunk[ws:ws + _BASES_PER_WORD]):
                    word |= c << ((15 - j) << 1)
                words.append(word)
        for c in range(4):
            cnt = self.L2[c + 1] - self.L2[c]
            words.extend((cnt & 0xFFFFFFFF, cnt >> 32))
        return words

    def dump_bwt(self, path: str | Path) -> None:
        """Write the BWT with its interleaved occurrence checkpoints."""
        words = self._words()
        with open(path, "wb") as fp:
            fp.write(_HEADER.pack(self.primary, *self.L2[1:]))
            fp.write(struct.pack(f"<{len(words)}I", *words))

    def dump_sa(self, path: str | Path) -> None:
        """Write the sampled suffix array."""
        sa = self._require_sa()
        with open(path, "wb") as fp:
            fp.write(_SA_HEADER.pack(self.primary, *self.L2[1:], self.sa_intv, self.seq_len))
            fp.write(struct.pack(f"<{len(sa) - 1}Q", *sa[1:]))

    def restore_sa(self, path: str | Path) -> None:
        """Load the sampled suffix array matching this BWT."""
        data = Path(path).read_bytes()
        if len(data) < _SA_HEADER.size:
            raise ValueError(f"{path}: truncated SA header")
        primary, _, _, _, _, sa_intv, seq_len = _SA_HEADER.unpack_from(data)
        if primary != self.primary:
            raise ValueError("SA-BWT inconsistency: primary is not the same.")
        if seq_len != self.seq_len:
            raise ValueError("SA-BWT inconsistency: seq_len is not the same.")
        if sa_intv < 1:
            raise ValueError(f"{path}: invalid SA interval")
        n_sa = (self.seq_len + sa_intv) // sa_intv
        if len(data) < _SA_HEADER.size + 8 * (n_sa - 1):
            raise ValueError(f"{path}: truncated SA data")
        values = struct.unpack_from(f"<{n_sa - 1}Q", data, _SA_HEADER.size)
        self.sa_intv = sa_intv
        self._sa = [-1, *values]

    # ------------------------------------------------------- suffix array

    @property
    def n_sa(self) -> int:
        return len(self._sa) if self._sa is not None else 0

    def _require_sa(self) -> list[int]:
        if self._sa is None:
            raise RuntimeError("suffix array is not available")
        return self._sa

    def _inv_psi(self, k: int) -> int:
        if k == self.primary:
            return 0
        c = self.codes[k - (k > self.primary)]
        return self.L2[c] + self.occ(k, c)

    def cal_sa(self, intv: int) -> None:
        """Sample the suffix array every ``intv`` rows (a power of two)."""
        if intv < 1 or intv & (intv - 1):
            raise ValueError("SA sample interval is not a power of 2.")
        samples = [0] * ((self.seq_len + intv) // intv)
        isa, pos = 0, self.seq_len
        for _ in range(self.seq_len):
            if isa % intv == 0:
                samples[isa // intv] = pos
            pos -= 1
            isa = self._inv_psi(isa)
        if isa % intv == 0:
            samples[isa // intv] = pos
        samples[0] = -1
        self.sa_intv = intv
        self._sa = samples

    def sa(self, k: int) -> int:
        """Text position of the suffix in row ``k``; ``-1`` for row 0."""
        samples = self._require_sa()
        mask = self.sa_intv - 1
        steps = 0
        while k & mask:
            steps += 1
            k = self._inv_psi(k)
        return steps + samples[k // self.sa_intv]

    # ---------------------------------------------------------- occurrence

    def occ(self, k: int, c: int) -> int:
        """Number of ``c`` in BWT rows ``0..k`` inclusive."""
        if k == self.seq_len:
            return self.L2[c + 1] - self.L2[c]
        if k < 0:
            return 0
        k -= k >= self.primary
        block = k >> OCC_INTV_SHIFT
        return self._checkpoints[block][c] + self.codes.count(c, block << OCC_INTV_SHIFT, k + 1)

    def occ4(self, k: int) -> tuple[int, int, int, int]:
        """Occurrences of all four bases in BWT rows ``0..k``."""
        if k < 0:
            return (0, 0, 0, 0)
        k -= k >= self.primary
        block = k >> OCC_INTV_SHIFT
        start = block << OCC_INTV_SHIFT
        base = self._checkpoints[block]
        return tuple(base[c] + self.codes.count(c, start, k + 1) for c in range(4))

    def two_occ(self, k: int, l: int, c: int) -> tuple[int, int]:
        return self.occ(k, c), self.occ(l, c)

    def two_occ4(self, k: int, l: int) -> tuple[tuple[int, ...], tuple[int, ...]]:
        return self.occ4(k), self.occ4(l)

    # ------------------------------------------------------------ matching

    def match_exact(self, seq: str | bytes | Iterable[int]) -> tuple[int, int] | None:
        """SA interval ``(k, l)`` of exact occurrences of ``seq``, or None."""
        return self.match_exact_alt(seq, 0, self.seq_len)

    def match_exact_alt(
        self, seq: str | bytes | Iterable[int], k: int, l: int
    ) -> tuple[int, int] | None:
        """Narrow the interval ``(k, l)`` by backward search over ``seq``."""
        for c in reversed(_encode(seq)):
            if c > 3:
                return None
            ok, ol = self.two_occ(k - 1, l, c)
            k = self.L2[c] + ok + 1
            l = self.L2[c] + ol
            if k > l:
                return None
        return k, l

    # ------------------------------------------------------ bidirectional

    def set_intv(self, c: int) -> Interval:
        """Bi-interval of the single base ``c``."""
        l2 = self.L2
        return Interval((l2[c] + 1, l2[3 - c] + 1, l2[c + 1] - l2[c]), 0)

    def extend(self, ik: Interval, is_back: bool) -> list[Interval]:
        """Extend ``ik`` by each base, backward or forward (complemented)."""
        fwd = 0 if is_back else 1
        back = 1 - fwd
        tk, tl = self.two_occ4(ik.x[fwd] - 1, ik.x[fwd] - 1 + ik.x[2])
        xs = [[0, 0, 0] for _ in range(4)]
        for i in range(4):
            xs[i][fwd] = self.L2[i] + 1 + tk[i]
            xs[i][2] = tl[i] - tk[i]
        spans = ik.x[fwd] <= self.primary and ik.x[fwd] + ik.x[2] - 1 >= self.primary
        xs[3][back] = ik.x[back] + spans
        xs[2][back] = xs[3][back] + xs[3][2]
        xs[1][back] = xs[2][back] + xs[2][2]
        xs[0][back] = xs[1][back] + xs[1][2]
        return [Interval(tuple(x), 0) for x in xs]

    def smem1(
        self, q: str | bytes | Sequence[int], x: int, min_intv: int = 1, max_intv: int = 0
    ) -> tuple[int, list[Interval]]:
        """Collect SMEMs covering query position ``x``.

        Returns the end of the longest exact match starting at ``x`` and the
        matches sorted by start coordinate.
        """
        q = _encode(q)
        n = len(q)
        mems: list[Interval] = []
        if q[x] > 3:
            return x + 1, mems
        min_intv = max(min_intv, 1)
        ik = replace(self.set_intv(q[x]), info=x + 1)
        curr: list[Interval] = []
        for i in range(x + 1, n):
            if ik.size < max_intv:
                curr.append(ik)
                break
            if q[i] < 4:
                c = 3 - q[i]
                ok = self.extend(ik, False)
                if ok[c].size != ik.size:
                    curr.append(ik)
                    if ok[c].size < min_intv:
                        break
                ik = replace(ok[c], info=i + 1)
            else:
                curr.append(ik)
                break
        else:
            curr.append(ik)
        curr.reverse()
        ret = curr[0].info
        prev = curr

        ok = None
        for i in range(x - 1, -2, -1):
            c = q[i] if i >= 0 and q[i] < 4 else -1
            curr = []
            for p in prev:
                if c >= 0 and ik.size >= max_intv:
                    ok = self.extend(p, True)
                if c < 0 or ik.size < max_intv or ok[c].size < min_intv:
                    if not curr and (not mems or i + 1 < mems[-1].info >> 32):
                        ik = replace(p, info=p.info | (i + 1) << 32)
                        mems.append(ik)
                elif not curr or ok[c].size != curr[-1].size:
                    curr.append(replace(ok[c], info=p.info))
            if not curr:
                break
            prev = curr
        mems.reverse()
        return ret, mems

    def seed_strategy1(
        self, q: str | bytes | Sequence[int], x: int, min_len: int, max_intv: int
    ) -> tuple[int, Interval | None]:
        """Find the shortest match from ``x`` of at least ``min_len`` bases
        whose interval is smaller than ``max_intv``."""
        q = _encode(q)
        if q[x] > 3:
            return x + 1, None
        ik = self.set_intv(q[x])
        for i in range(x + 1, len(q)):
            if q[i] > 3:
                return i + 1, None
            c = 3 - q[i]
            ok = self.extend(ik, False)
            if ok[c].size < max_intv and i - x >= min_len:
                return i + 1, replace(ok[c], info=x << 32 | (i + 1))
            ik = ok[c]
        return len(q), None