"""Reading FASTA/FASTQ reads (plain or gzip-compressed) into nucleotide codes.

Each read keeps its full sequence as codes 0..4 (4 for ambiguous bases) in
forward orientation; ``rseq`` holds the reverse (or reverse complement) of
the part left after quality trimming.
"""

from __future__ import annotations

import gzip
import io
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Any, BinaryIO, Iterator, Sequence

log = logging.getLogger(__name__)

_MIN_READ_LEN = 35
_MAX_BARCODE_LEN = 63
_BARCODE_LOW_QUAL = 13


def _build_nt4() -> bytes:
    table = bytearray([4] * 256)
    for code, base in enumerate("ACGT"):
        table[ord(base)] = code
        table[ord(base.lower())] = code
    return bytes(table)


_NT4 = _build_nt4()
_COMPLEMENT = bytes(3 - i if i < 4 else i for i in range(256))


def seq_reverse(seq: str | bytes | Sequence[int], is_comp: bool = False) -> str | bytes:
    """Reverse ``seq``; with ``is_comp`` also complement codes 0..3."""
    if isinstance(seq, str):
        if is_comp:
            raise TypeError("only nucleotide codes can be complemented")
        return seq[::-1]
    out = bytes(seq)[::-1]
    return out.translate(_COMPLEMENT) if is_comp else out


@dataclass
class Read:
    """A sequencing read and the alignment state attached to it later."""

    name: str
    seq: bytearray
    qual: str | None = None
    rseq: bytes = b""
    bc: str = ""
    full_len: int = -1
    clip_len: int = -1
    length: int = -1
    tid: int = -1
    # alignment state, filled in by later stages
    type: int = 0
    strand: int = 0
    pos: int = 0
    mapq: int = 0
    seq_q: int = 0
    n_mm: int = 0
    n_gapo: int = 0
    n_gape: int = 0
    c1: int = 0
    c2: int = 0
    sa: int = 0
    ref_shift: int = 0
    score: int = 0
    extra_flag: int = 0
    nm: int = 0
    md: str | None = None
    cigar: list[Any] | None = None
    multi: list[Any] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.seq = bytearray(self.seq)
        if self.full_len < 0:
            self.full_len = len(self.seq)
        if self.length < 0:
            self.length = self.full_len
        if self.clip_len < 0:
            self.clip_len = self.length


def trim_read(trim_qual: int, read: Read) -> int:
    """Trim low-quality 3' bases; return how many bases were trimmed off."""
    if trim_qual < 1 or not read.qual:
        return 0
    s = best = 0
    best_len = read.length
    for l in range(read.length - 1, _MIN_READ_LEN - 1, -1):
        s += trim_qual - (ord(read.qual[l]) - 33)
        if s < 0:
            break
        if s > best:
            best, best_len = s, l
    read.clip_len = read.length = best_len
    return read.full_len - read.length


def _is_header(line: str) -> bool:
    return line[:1] in (">", "@")


def _records(fp: IO[str]) -> Iterator[tuple[str, str, str, str | None]]:
    """Yield ``(name, comment, sequence, quality)`` from FASTA/FASTQ text."""
    lines = iter(fp)
    header = next((line for line in lines if _is_header(line)), None)
    while header is not None:
        parts = header.rstrip("\r\n")[1:].split(None, 1)
        name = parts[0] if parts else ""
        comment = parts[1] if len(parts) > 1 else ""
        chunks: list[str] = []
        header = None
        has_qual = False
        for line in lines:
            if _is_header(line):
                header = line
                break
            if line[:1] == "+":
                has_qual = True
                break
            chunks.append(line.strip())
        seq = "".join(chunks)
        if not has_qual:
            yield name, comment, seq, None
            continue
        qchunks: list[str] = []
        qlen = 0
        for line in lines:
            q = line.rstrip("\r\n")
            qchunks.append(q)
            qlen += len(q)
            if qlen >= len(seq):
                break
        qual = "".join(qchunks)
        if len(qual) != len(seq):
            raise ValueError(f"read {name!r}: quality and sequence lengths differ")
        yield name, comment, seq, qual
        header = next((line for line in lines if _is_header(line)), None)


def _strip_mate_suffix(name: str) -> str:
    if len(name) > 2 and name[-2] == "/" and name[-1] in "12":
        return name[:-2]
    return name


class SeqReader:
    """Batch reader of FASTA/FASTQ reads from a path or a binary stream."""

    def __init__(
        self,
        source: str | Path | BinaryIO,
        *,
        is_comp: bool = False,
        illumina13: bool = False,
        casava_filter: bool = False,
        barcode_len: int = 0,
    ) -> None:
        if barcode_len < 0:
            raise ValueError("barcode length must not be negative")
        if barcode_len > _MAX_BARCODE_LEN:
            raise ValueError(f"the maximum barcode length is {_MAX_BARCODE_LEN}.")
        self.is_comp = is_comp
        self.illumina13 = illumina13
        self.casava_filter = casava_filter
        self.barcode_len = barcode_len

        if isinstance(source, (str, Path)):
            raw: Any = open(source, "rb")
            self._owns = True
        else:
            raw = source
            self._owns = False
            if not hasattr(raw, "peek"):
                raw = io.BufferedReader(io.BytesIO(raw.read()))
        if raw.peek(2)[:2] == b"\x1f\x8b":
            raw = gzip.GzipFile(fileobj=raw)
        self._raw = raw
        self._text = io.TextIOWrapper(raw, encoding="latin-1", newline="")
        self._records = _records(self._text)
        self._closed = False

    def read_batch(self, n_needed: int = 0x40000, trim_qual: int = 0) -> list[Read]:
        """Read up to ``n_needed`` reads; an empty list means the input is done."""
        if self._closed:
            raise ValueError("reader is closed")
        if n_needed < 1:
            raise ValueError("n_needed must be at least 1")
        reads: list[Read] = []
        n_trimmed = n_tot = 0
        l_bc = self.barcode_len
        for name, comment, seq, qual in self._records:
            if self.casava_filter and comment:
                _, sep, rest = comment.partition(":")
                if sep and rest[:1] == "Y":
                    continue
            if self.illumina13 and qual:
                qual = "".join(chr((ord(ch) - 31) & 0xFF) for ch in qual)
            if len(seq) <= l_bc:
                continue
            bc = ""
            if l_bc:
                bc = "".join(
                    ch.lower() if qual and ord(qual[i]) - 33 < _BARCODE_LOW_QUAL else ch.upper()
                    for i, ch in enumerate(seq[:l_bc])
                )
                seq = seq[l_bc:]
                if qual:
                    qual = qual[l_bc:]
            codes = bytearray(seq.encode("latin-1").translate(_NT4))
            read = Read(name=_strip_mate_suffix(name), seq=codes, qual=qual or None, bc=bc)
            n_tot += read.full_len
            if read.qual and trim_qual >= 1:
                n_trimmed += trim_read(trim_qual, read)
            read.rseq = seq_reverse(codes[: read.length], self.is_comp)
            reads.append(read)
            if len(reads) == n_needed:
                break
        if reads and trim_qual >= 1:
            log.info("%.1f%% bases are trimmed.", 100.0 * n_trimmed / n_tot)
        return reads

    def __iter__(self) -> Iterator[Read]:
        while batch := self.read_batch():
            yield from batch

    def close(self) -> None:
        """Release the input; streams handed in by the caller stay open."""
        if self._closed:
            return
        self._closed = True
        if self._owns:
            self._text.close()
        else:
            self._text.detach()

    def __enter__(self) -> "SeqReader":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()