# bwtkit

A pure-Python library for building and querying a Burrows-Wheeler transform
(FM) index over DNA, for reading FASTA/FASTQ reads, and for the bookkeeping
that follows short-read alignment: choosing a read's placement, mapping
quality, MD tags, CIGARs, insert-size estimation and read pairing.

Nucleotides are coded 0..3 for A, C, G, T. Any code above 3 is ambiguous.
Where a sequence is expected, you may usually pass an `ACGT` string or a
sequence of codes.

## Modules

- `bwtkit.bwt`: the full index.
  - `BWT.from_sequence(seq)` builds the index of a sequence.
  - Occurrence counts: `occ`, `occ4`, `two_occ`, `two_occ4`.
  - The sampled suffix array is computed with `cal_sa(intv)` (a power of two) and looked up with `sa(k)`. Row 0, the terminator, gives `-1`.
  - Backward search: `match_exact(seq)` and `match_exact_alt(seq, k, l)` return an interval `(k, l)`, or `None` when there is no match.
  - Bidirectional intervals: `set_intv`, `extend`, `smem1` and `seed_strategy1`. Their results are `Interval` objects. Bidirectional extension only makes sense when the indexed text holds both strands.
  - Files: `dump_bwt` / `dump_sa` write the index, and `BWT.restore(bwt_path, sa_path)` / `restore_sa` read it back.
- `bwtkit.bwt_lite`: `LiteBWT`, a small index with a full suffix array for short texts. It offers `occ`, `occ4` and `two_occ4`.
- `bwtkit.seqio`: reading reads.
  - `SeqReader` reads FASTA or FASTQ, plain or gzip-compressed, from a path or a binary stream. It returns batches of `Read` objects from `read_batch(n_needed, trim_qual)`, which gives an empty list at the end of input.
  - The reader can be iterated and used as a context manager.
  - Options: complementing `rseq`, Illumina 1.3 qualities, Casava filtering and barcode removal.
  - `trim_read` trims low-quality 3' ends, and `seq_reverse` reverses (and optionally complements) codes.
- `bwtkit.bwase`: single-end helpers.
  - `aln2seq` / `aln2seq_core` pick a placement from `SaiAlignment` hits and collect `MultiHit` alternatives.
  - `approx_mapq` gives an approximate mapping quality, and `log_n` a Phred-scaled log.
  - `cal_md` returns an MD tag and an edit distance.
  - `correct_trimmed` soft-clips a trimmed tail.
  - `pos_end` and `pos_end_multi` give where an alignment ends.
  - `format_seq` and `format_cigar` produce SAM-style strings. CIGARs are lists of `CigarOp`.
- `bwtkit.isize`: `infer_isize(pairs, ap_prior, ref_len)` estimates the insert-size distribution as an `InsertSizeInfo`. `PairOptions` holds the pairing settings.
- `bwtkit.pairing`: `pair_reads(reads, alns, hits, opt, s_mm, ii)` picks the best properly oriented pair among candidate `Hit`s. It moves both ends to that pair, adjusts their mapping qualities, and returns how many confidently placed ends were moved.

Progress and warnings go through the standard `logging` module.

## Example

```python
from bwtkit.bwt import BWT

index = BWT.from_sequence("ACGTACGTTG")
index.cal_sa(1)
k, l = index.match_exact("ACG")
print(l - k + 1)                                    # 2
print(sorted(index.sa(i) for i in range(k, l + 1)))  # [0, 4]
```

## What it does not do

This is a library with no command-line program. The following are not included:

- aligning reads against the index;
- building an index from FASTA reference files;
- a packed-reference or sequence-dictionary store;
- Smith-Waterman rescue of unmapped mates;
- writing SAM records.

The pieces above are the building blocks that such a pipeline would call.

## Installing

```
pip install .
```

To run the tests, run `pip install .[test]` and then `pytest`.