"""FM-index construction and queries, FASTA/FASTQ reading and short-read alignment post-processing for DNA."""

__version__ = "0.1.0"
__all__ = ["bwt", "bwt_lite", "seqio", "bwase", "isize", "pairing"]