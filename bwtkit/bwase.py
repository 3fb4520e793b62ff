"""Single-end alignment bookkeeping: turning SA intervals into read
placements, mapping-quality approximation, MD tags, CIGAR handling and
SAM-style sequence formatting.

Reads are :class:`bwtkit.seqio.Read` objects.  Their ``seq`` holds codes
0..4 in forward orientation.  References passed to :func:`cal_md` are
unpacked code sequences (0..3 for A, C, G, T).
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass, replace
from typing import Protocol, Sequence

from bwtkit.seqio import Read

TYPE_NO_MATCH = 0
TYPE_UNIQUE = 1
TYPE_REPEAT = 2
TYPE_MATESW = 3

FROM_M = 0
FROM_I = 1
FROM_D = 2
FROM_S = 3

_OP_CHARS = "MIDS"
_FORWARD = "ACGTN"
_REVCOMP = "TGCAN"


class _Uniform(Protocol):
    def random(self) -> float: ...


@dataclass(frozen=True)
class CigarOp:
    """One CIGAR operation: ``op`` is 0..3 for M, I, D, S."""

    op: int
    length: int

    def __post_init__(self) -> None:
        if not 0 <= self.op <= 3:
            raise ValueError(f"unknown CIGAR operation {self.op}")
        if self.length < 0:
            raise ValueError("CIGAR length must not be negative")

    @property
    def char(self) -> str:
        return _OP_CHARS[self.op]

    def __str__(self) -> str:
        return f"{self.length}{self.char}"


@dataclass(frozen=True)
class SaiAlignment:
    """One hit from the aligner: an SA interval ``k..l`` and its edits."""

    k: int
    l: int
    score: int = 0
    n_mm: int = 0
    n_gapo: int = 0
    n_gape: int = 0
    n_ins: int = 0
    n_del: int = 0

    @property
    def width(self) -> int:
        return self.l - self.k + 1


@dataclass
class MultiHit:
    """An alternative placement; ``pos`` is an SA row until converted."""

    pos: int
    gap: int = 0
    ref_shift: int = 0
    mm: int = 0
    strand: int = 0
    cigar: list[CigarOp] | None = None


def log_n(n: int) -> int:
    """Phred-scaled ``log(n)`` rounded to an integer; 0 for ``n`` below 1."""
    if n < 1:
        return 0
    return int(4.343 * math.log(n) + 0.5)


def aln2seq_core(
    alns: Sequence[SaiAlignment],
    read: Read,
    set_main: bool = True,
    n_multi: int = 0,
    rng: _Uniform | None = None,
) -> None:
    """Pick the primary hit among ``alns`` and collect alternative hits."""
    if not alns:
        read.type = TYPE_NO_MATCH
        read.c1 = read.c2 = 0
        return
    if rng is None:
        rng = random.Random()

    if set_main:
        best = alns[0].score
        cnt = 0
        n_best = 0
        for p in alns:
            if p.score > best:
                break
            n_best += 1
            if rng.random() * (p.width + cnt) > cnt:
                read.n_mm, read.n_gapo, read.n_gape = p.n_mm, p.n_gapo, p.n_gape
                read.ref_shift = p.n_del - p.n_ins
                read.score = p.score
                read.sa = p.k + int(p.width * rng.random())
            cnt += p.width
        read.c1 = cnt
        read.c2 = sum(p.width for p in alns[n_best:])
        read.type = TYPE_REPEAT if read.c1 > 1 else TYPE_UNIQUE

    if n_multi:
        n_occ = sum(q.width for q in alns)
        if n_occ > n_multi + 1:
            read.multi = []
            return
        read.multi = [
            MultiHit(
                pos=pos,
                gap=q.n_gapo + q.n_gape,
                ref_shift=q.n_del - q.n_ins,
                mm=q.n_mm,
            )
            for q in alns
            for pos in range(q.k, q.l + 1)
        ]


def aln2seq(alns: Sequence[SaiAlignment], read: Read, rng: _Uniform | None = None) -> None:
    """Pick the primary hit without collecting alternatives."""
    aln2seq_core(alns, read, True, 0, rng)


def approx_mapq(read: Read, mm: int) -> int:
    """Approximate mapping quality from hit counts and mismatches."""
    if read.c1 == 0:
        return 23
    if read.c1 > 1:
        return 0
    if read.n_mm == mm:
        return 25
    if read.c2 == 0:
        return 37
    n = min(read.c2, 255)
    return max(0, 23 - log_n(n))


def cal_md(
    cigar: Sequence[CigarOp] | None,
    length: int,
    pos: int,
    seq: Sequence[int],
    ref: Sequence[int],
) -> tuple[str, int]:
    """Compute the MD tag and edit distance of an alignment at ``pos``."""
    l_pac = len(ref)
    parts: list[str] = []
    nm = 0
    u = 0
    x, y = pos, 0

    def match_run(n: int) -> None:
        nonlocal u, nm
        for z in range(n):
            if x + z >= l_pac:
                break
            c = ref[x + z]
            if c > 3 or seq[y + z] > 3 or c != seq[y + z]:
                parts.append(f"{u}{_FORWARD[min(c, 4)]}")
                nm += 1
                u = 0
            else:
                u += 1

    if cigar:
        for op in cigar:
            n = op.length
            if op.op == FROM_M:
                match_run(n)
                x += n
                y += n
            elif op.op in (FROM_I, FROM_S):
                y += n
                if op.op == FROM_I:
                    nm += n
            elif op.op == FROM_D:
                deleted = "".join(_FORWARD[ref[x + z]] for z in range(n) if x + z < l_pac)
                parts.append(f"{u}^{deleted}")
                u = 0
                x += n
                nm += n
    else:
        match_run(length)
    parts.append(str(u))
    return "".join(parts), nm


def correct_trimmed(read: Read) -> None:
    """Soft-clip the quality-trimmed tail so the CIGAR covers the full read."""
    if read.length == read.full_len:
        return
    clip = read.full_len - read.length
    cigar = list(read.cigar) if read.cigar else None
    if read.strand == 0:
        if cigar and cigar[-1].op == FROM_S:
            cigar[-1] = replace(cigar[-1], length=cigar[-1].length + clip)
        elif cigar is None:
            cigar = [CigarOp(FROM_M, read.length), CigarOp(FROM_S, clip)]
        else:
            cigar.append(CigarOp(FROM_S, clip))
    else:
        if cigar and cigar[0].op == FROM_S:
            cigar[0] = replace(cigar[0], length=cigar[0].length + clip)
        elif cigar is None:
            cigar = [CigarOp(FROM_S, clip), CigarOp(FROM_M, read.length)]
        else:
            cigar.insert(0, CigarOp(FROM_S, clip))
    read.cigar = cigar
    read.length = read.full_len


def _ref_span(cigar: Sequence[CigarOp]) -> int:
    return sum(op.length for op in cigar if op.op in (FROM_M, FROM_D))


def pos_end(read: Read) -> int:
    """Reference coordinate just past the end of the read's alignment."""
    if read.cigar:
        return read.pos + _ref_span(read.cigar)
    return read.pos + read.length


def pos_end_multi(hit: MultiHit, length: int) -> int:
    """Reference coordinate just past the end of an alternative hit."""
    if hit.cigar:
        return hit.pos + _ref_span(hit.cigar)
    return hit.pos + length


def format_seq(read: Read) -> str:
    """The full read as bases, reverse-complemented on the reverse strand."""
    seq = read.seq[: read.full_len]
    if read.strand == 0:
        return "".join(_FORWARD[min(c, 4)] for c in seq)
    return "".join(_REVCOMP[min(c, 4)] for c in reversed(seq))


def format_cigar(cigar: Sequence[CigarOp] | None, length: int) -> str:
    """CIGAR string; an ungapped alignment of ``length`` bases without one."""
    if cigar:
        return "".join(str(op) for op in cigar)
    return f"{length}M"