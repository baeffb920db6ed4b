from __future__ import annotations

import glob
import logging
import os
from typing import Iterator, List

import bamnostic as bn

from .cigar import normalize_cigar
from .errors import MalformedRecord
from .featcountClasses import AlignmentRecord

logger = logging.getLogger("featcount.bam")

# SAM FLAG bits
FLAG_PAIRED = 0x1
FLAG_UNMAPPED = 0x4
FLAG_REVERSE = 0x10
FLAG_MATE_REVERSE = 0x20
FLAG_READ1 = 0x40
FLAG_READ2 = 0x80
FLAG_SECONDARY = 0x100
FLAG_SUPPLEMENTARY = 0x800

MAPQ_UNSET = 255


def _get_read_name(aln) -> str:
    # Different libs/files expose different attributes
    for attr in ("query_name", "qname", "read_name"):
        v = getattr(aln, attr, None)
        if v:
            return v
    return ""


def _get_tag(aln, tag: str):
    try:
        return aln.opt(tag)
    except (KeyError, AttributeError):
        return None


def alignment_from_segment(aln) -> AlignmentRecord:
    """
    Convert a bamnostic ``AlignedSegment`` (or anything exposing the same
    attributes) into an ``AlignmentRecord``.
    """
    flag = getattr(aln, "flag", None)
    if not isinstance(flag, int):
        raise MalformedRecord(f"{_get_read_name(aln) or '?'}: missing FLAG")

    unmapped = bool(flag & FLAG_UNMAPPED)
    chrom = getattr(aln, "reference_name", None) or None
    if chrom == "*":
        chrom = None

    cigar = getattr(aln, "cigarstring", None)
    if cigar is None:
        cigar = getattr(aln, "cigar", None)

    mapq = getattr(aln, "mapq", None)
    if mapq == MAPQ_UNSET:
        mapq = None

    nh = _get_tag(aln, "NH")
    if nh is not None and not isinstance(nh, int):
        raise MalformedRecord(f"{_get_read_name(aln)}: NH tag is not an integer ({nh!r})")

    return AlignmentRecord(
        read_name=_get_read_name(aln),
        chrom=chrom,
        pos=(getattr(aln, "pos", 0) or 0) + 1,  # bamnostic uses 0-based pos
        cigar=() if unmapped else normalize_cigar(cigar),
        is_paired=bool(flag & FLAG_PAIRED),
        is_read1=bool(flag & FLAG_READ1),
        is_read2=bool(flag & FLAG_READ2),
        is_reverse=bool(flag & FLAG_REVERSE),
        mate_is_reverse=bool(flag & FLAG_MATE_REVERSE),
        is_secondary=bool(flag & FLAG_SECONDARY),
        is_supplementary=bool(flag & FLAG_SUPPLEMENTARY),
        is_unmapped=unmapped,
        mapq=mapq,
        nh=nh,
    )


def _invalid_placeholder(aln, error: MalformedRecord) -> AlignmentRecord:
    # keeps the record in the stream so that it is counted as invalid downstream
    logger.debug(f"{_get_read_name(aln) or '?'}: {error}")
    flag = getattr(aln, "flag", None)
    if not isinstance(flag, int):
        flag = 0
    # mate flags stay so that a broken mate still pairs with its partner
    return AlignmentRecord(
        read_name=_get_read_name(aln),
        chrom=getattr(aln, "reference_name", None) or None,
        pos=0,
        cigar=(),
        is_paired=bool(flag & FLAG_PAIRED),
        is_read1=bool(flag & FLAG_READ1),
        is_read2=bool(flag & FLAG_READ2),
    )


def read_alignments(bam_path: str) -> Iterator[AlignmentRecord]:
    """
    Stream every record of a BAM file as ``AlignmentRecord``.

    A record that cannot be converted is replaced by a placeholder with an
    invalid start position so that it is counted as ``invalid`` rather than
    dropped.
    """
    try:
        bam = bn.AlignmentFile(str(bam_path), "rb")
    except Exception as e:
        raise RuntimeError(f"Could not open BAM: {bam_path}: {e}") from e

    with bam:
        for aln in bam:
            try:
                yield alignment_from_segment(aln)
            except MalformedRecord as e:
                yield _invalid_placeholder(aln, e)


def expand_bam_patterns(bams: List[str]) -> List[str]:
    """Expand glob patterns (sample*.bam); keep order; de-dupe."""
    seen = set()
    out: List[str] = []
    for pat in bams:
        matches = glob.glob(pat) if any(ch in pat for ch in "*?[]") else ([pat] if os.path.exists(pat) else [])
        if not matches:
            logger.warning(f"No BAMs matched: {pat}")
        for m in sorted(matches):
            if m not in seen:
                seen.add(m)
                out.append(m)
    return out


def sample_name(bam_path: str) -> str:
    return os.path.splitext(os.path.basename(bam_path))[0]
