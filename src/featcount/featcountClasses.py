from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple

from .errors import MalformedRecord

STRANDS = ("+", "-", ".")


class StrandMode(Enum):
    YES = "yes"
    NO = "no"
    REVERSE = "reverse"

    @property
    def is_stranded(self) -> bool:
        return self is not StrandMode.NO


class OverlapMode(Enum):
    UNION = "union"
    INTERSECTION_STRICT = "intersection-strict"
    INTERSECTION_NONEMPTY = "intersection-nonempty"


# Genomic interval, 1-based inclusive on both ends
@dataclass(frozen=True)
class GenomicInterval:
    __slots__ = ("chrom", "start", "end", "strand")
    chrom: str
    start: int
    end: int
    strand: str

    def __post_init__(self):
        if not self.chrom:
            raise MalformedRecord("interval without chromosome")
        if self.start < 1 or self.end < self.start:
            raise MalformedRecord(
                f"invalid interval {self.chrom}:{self.start}-{self.end} (need 1 <= start <= end)"
            )
        if self.strand not in STRANDS:
            raise MalformedRecord(f"invalid strand {self.strand!r}")

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def __str__(self) -> str:
        return f"{self.chrom}:{self.start}-{self.end}({self.strand})"


# Input B: one annotation line as handed over by the GFF/GTF reader
@dataclass
class AnnotationRecord:
    chrom: str
    feature: str
    start: int
    end: int
    strand: str
    attributes: Dict[str, str] = field(default_factory=dict)


# Input A: the subset of a SAM record consumed by the counter
@dataclass
class AlignmentRecord:
    """
    One alignment as handed over by the BAM reader.

    ``mapq`` is None when the aligner did not set a mapping quality
    (255 in SAM); an unset quality never fails the quality filter.
    ``nh`` is None when the record carries no NH tag.
    """
    read_name: str
    chrom: Optional[str]
    pos: int  # 1-based leftmost reference position
    cigar: Tuple[Tuple[int, str], ...] = ()
    is_paired: bool = False
    is_read1: bool = False
    is_read2: bool = False
    is_reverse: bool = False
    mate_is_reverse: bool = False
    is_secondary: bool = False
    is_supplementary: bool = False
    is_unmapped: bool = False
    mapq: Optional[int] = None
    nh: Optional[int] = None
