"""Pairing the two ends of a paired read.

Given every candidate placement (a :class:`Hit`) of both ends, the best
properly oriented pair within the allowed insert size is chosen. Both ends
are then moved to that pair, and their mapping qualities are adjusted to
reflect how clearly it beats the alternatives.
"""

from __future__ import annotations

import math
import sys
from dataclasses import dataclass
from typing import Iterable, Sequence

from bwtkit.bwase import SaiAlignment, log_n
from bwtkit.isize import InsertSizeInfo, PairOptions, PairType
from bwtkit.seqio import Read

SAM_FPP = 0x2

_MASK64 = (1 << 64) - 1
_MASK32 = (1 << 32) - 1
_UNSET = _MASK64
_MAX_PAIR_MAPQ = 60


@dataclass(frozen=True)
class Hit:
    """A candidate placement of one end.

    ``end`` is 0 or 1 and says which read it belongs to. ``aln_index``
    indexes that end's alignment list, and ``strand`` is 1 for the reverse
    strand.
    """

    pos: int
    end: int
    aln_index: int
    strand: int

    def __post_init__(self) -> None:
        if self.end not in (0, 1):
            raise ValueError("end must be 0 or 1")
        if self.strand not in (0, 1):
            raise ValueError("strand must be 0 or 1")
        if self.aln_index < 0 or self.pos < 0:
            raise ValueError("position and alignment index must not be negative")

    @property
    def key(self) -> tuple[int, int]:
        return self.pos, self.aln_index << 2 | self.strand << 1 | self.end


def _mix64(x: int) -> int:
    """A 64-bit integer mixer used to break score ties deterministically."""
    x &= _MASK64
    x = ((x ^ (x >> 30)) * 0xBF58476D1CE4E5B9) & _MASK64
    x = ((x ^ (x >> 27)) * 0x94D049BB133111EB) & _MASK64
    return x ^ (x >> 31)


def _isize_penalty(isize: int, ii: InsertSizeInfo) -> int:
    diff = abs(isize - ii.avg)
    if ii.std > 0:
        ratio = diff / ii.std
    else:
        ratio = math.inf if diff else 0.0
    tail = 0.5 * math.erfc(ratio / math.sqrt(2.0))
    tail = max(tail, sys.float_info.min)
    return int(-4.343 * math.log(tail) + 0.499)


def pair_reads(
    reads: Sequence[Read],
    alns: Sequence[Sequence[SaiAlignment]],
    hits: Iterable[Hit],
    opt: PairOptions,
    s_mm: int,
    ii: InsertSizeInfo,
) -> int:
    """Choose the best pair among ``hits`` and update both reads.

    Returns the number of ends that were moved away from a placement that
    had a non-zero mapping quality.
    """
    if len(reads) != 2 or len(alns) != 2:
        raise ValueError("pairing needs exactly two reads and two alignment lists")
    if opt.type is not PairType.STD:
        raise ValueError(f"unsupported pair type: {opt.type}")

    max_len = max(reads[0].full_len, reads[1].full_len)
    o_score = subo_score = _UNSET
    o_n = subo_n = 0
    o_pos: list[Hit | None] = [None, None]

    def consider(u: Hit | None, v: Hit) -> None:
        nonlocal o_score, subo_score, o_n, subo_n
        if u is None or v.pos <= u.pos:
            return
        isize = v.pos + reads[v.end].length - u.pos
        if isize < max_len:
            return
        if ii.high:
            if isize > ii.high_bayesian:
                return
        elif isize > opt.max_isize:
            return
        s = alns[v.end][v.aln_index].score + alns[u.end][u.aln_index].score
        s *= 10
        if ii.high:
            s += _isize_penalty(isize, ii)
        s = (s << 32 | (_mix64(u.pos << 32 | v.pos) & _MASK32)) & _MASK64
        if s >> 32 == o_score >> 32:
            o_n += 1
        elif s >> 32 < o_score >> 32:
            subo_n += o_n
            o_n = 1
        else:
            subo_n += 1
        if s < o_score:
            subo_score, o_score = o_score, s
            o_pos[u.end] = u
            o_pos[v.end] = v
        elif s < subo_score:
            subo_score = s

    last_pos: list[list[Hit | None]] = [[None, None], [None, None]]
    for hit in sorted(hits, key=lambda h: h.key):
        if hit.strand == 1:
            other = last_pos[1 - hit.end]
            consider(other[1], hit)
            consider(other[0], hit)
        else:
            mine = last_pos[hit.end]
            mine[0], mine[1] = mine[1], hit

    if o_score == _UNSET:
        return 0

    p0, p1 = reads
    mapq_p = 0
    if o_n == 1:
        if subo_score == _UNSET:
            mapq_p = 29
        elif (subo_score >> 32) - (o_score >> 32) > s_mm * 10:
            mapq_p = 23
        else:
            n = min(subo_n, 255)
            mapq_p = max(0, ((subo_score >> 32) - (o_score >> 32)) // 2 - log_n(n))

    best0, best1 = o_pos
    assert best0 is not None and best1 is not None
    kept0 = p0.pos == best0.pos and p0.strand == best0.strand
    kept1 = p1.pos == best1.pos and p1.strand == best1.strand
    if kept0 and kept1:
        if p0.mapq > 0 and p1.mapq > 0:
            p0.mapq = p1.mapq = min(p0.mapq + p1.mapq, _MAX_PAIR_MAPQ)
        else:
            if p0.mapq == 0:
                p0.mapq = min(mapq_p + 7, p1.mapq)
            if p1.mapq == 0:
                p1.mapq = min(mapq_p + 7, p0.mapq)
    elif kept0:
        p1.seq_q = 0
        p1.mapq = min(p0.mapq, mapq_p)
    elif kept1:
        p0.seq_q = 0
        p0.mapq = min(p1.mapq, mapq_p)
    else:
        p0.seq_q = p1.seq_q = 0
        p0.mapq = p1.mapq = max(0, mapq_p - 20)

    changed = 0
    for read, best in ((p0, best0), (p1, best1)):
        aln = alns[best.end][best.aln_index]
        read.extra_flag |= SAM_FPP
        if read.pos != best.pos or read.strand != best.strand:
            read.n_mm, read.n_gapo, read.n_gape = aln.n_mm, aln.n_gapo, aln.n_gape
            read.strand = best.strand
            read.score = aln.score
            read.pos = best.pos
            if read.mapq > 0:
                changed += 1
    return changed