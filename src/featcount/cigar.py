from __future__ import annotations

import re
from typing import List, Sequence, Tuple

from .errors import MalformedRecord
from .featcountClasses import AlignmentRecord, GenomicInterval, StrandMode

# SAM operations: consumes reference / emits an aligned block
MATCH_OPS = frozenset("M=X")
SKIP_OPS = frozenset("DN")       # reference only
READ_ONLY_OPS = frozenset("ISHP")  # no reference consumption
CIGAR_OPS = MATCH_OPS | SKIP_OPS | READ_ONLY_OPS

# pysam/BAM numeric codes, index == code
BAM_CIGAR_CODES = "MIDNSHP=X"

_CIGAR_RE = re.compile(r"(\d+)([MIDNSHP=X])")


def parse_cigar_string(cigar: str) -> Tuple[Tuple[int, str], ...]:
    """'10M5N10M' -> ((10, 'M'), (5, 'N'), (10, 'M')). '*' or '' -> ()."""
    if cigar in ("", "*"):
        return ()
    ops = _CIGAR_RE.findall(cigar)
    if "".join(n + op for n, op in ops) != cigar:
        raise MalformedRecord(f"invalid CIGAR string {cigar!r}")
    return tuple((int(n), op) for n, op in ops)


def normalize_cigar(cigar) -> Tuple[Tuple[int, str], ...]:
    """
    Accept a CIGAR as a string, as (length, op) pairs, or as the
    (code, length) tuples produced by BAM readers.
    """
    if cigar is None:
        return ()
    if isinstance(cigar, str):
        return parse_cigar_string(cigar)
    out = []
    for a, b in cigar:
        if isinstance(a, int) and isinstance(b, str):
            out.append((a, b))
        elif isinstance(a, int) and isinstance(b, int) and 0 <= a < len(BAM_CIGAR_CODES):
            out.append((b, BAM_CIGAR_CODES[a]))
        else:
            raise MalformedRecord(f"invalid CIGAR element ({a!r}, {b!r})")
    return tuple(out)


def read_strand(record: AlignmentRecord, strand_mode: StrandMode) -> str:
    """
    Strand a read is counted on.

    Single-end reads and first mates keep their alignment strand, second
    mates are inverted; ``reverse`` mode flips the result.
    """
    strand = "-" if record.is_reverse else "+"
    if record.is_paired and not record.is_read1:
        strand = "+" if strand == "-" else "-"
    if strand_mode is StrandMode.REVERSE:
        strand = "+" if strand == "-" else "-"
    return strand


def extract_intervals(
    chrom: str,
    start: int,
    cigar: Sequence[Tuple[int, str]],
    strand: str,
) -> List[GenomicInterval]:
    """
    Decompose an alignment into its aligned blocks.

    M/=/X emit ``[pos, pos + len - 1]`` and advance; D/N advance without
    emitting; I/S/H/P do neither. This holds for the first operation too, so
    a leading deletion or skip shifts the first block.
    """
    if start < 1:
        raise MalformedRecord(f"invalid alignment start {start}")
    result: List[GenomicInterval] = []
    pos = start
    for length, op in cigar:
        if not isinstance(length, int) or length <= 0:
            raise MalformedRecord(f"invalid CIGAR length {length!r} for op {op!r}")
        if op in MATCH_OPS:
            result.append(GenomicInterval(chrom, pos, pos + length - 1, strand))
            pos += length
        elif op in SKIP_OPS:
            pos += length
        elif op not in READ_ONLY_OPS:
            raise MalformedRecord(f"unknown CIGAR operation {op!r}")
    return result


def record_intervals(record: AlignmentRecord, strand_mode: StrandMode) -> List[GenomicInterval]:
    if record.is_unmapped:
        return []
    if not record.chrom:
        raise MalformedRecord(f"{record.read_name}: mapped read without reference name")
    return extract_intervals(
        record.chrom, record.pos, record.cigar, read_strand(record, strand_mode)
    )
