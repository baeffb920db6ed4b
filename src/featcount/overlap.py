from __future__ import annotations

from typing import Dict, FrozenSet, Iterable, Iterator, Optional, Sequence, Set

from .featcountClasses import GenomicInterval, OverlapMode, StrandMode
from .index import GenomicIntervalIndex


def _entries(
    iv: GenomicInterval,
    index: GenomicIntervalIndex,
    strand_mode: StrandMode,
) -> Dict[GenomicInterval, FrozenSet[str]]:
    # raises UnknownChromosome
    hits = index.query(iv.chrom, iv.start, iv.end)
    if strand_mode.is_stranded:
        hits = {k: v for k, v in hits.items() if k.strand == iv.strand}
    return hits


def base_feature_sets(
    iv: GenomicInterval,
    entries: Dict[GenomicInterval, FrozenSet[str]],
) -> Iterator[Set[str]]:
    """
    Yield the feature set of every run of bases of ``iv`` with constant coverage,
    left to right. Uncovered runs yield an empty set.

    Intersecting these sets gives the same result as intersecting the set of
    every single base, without walking the read base by base.
    """
    cuts = {iv.start, iv.end + 1}
    for hit in entries:
        cuts.add(max(hit.start, iv.start))
        cuts.add(min(hit.end, iv.end) + 1)
    points = sorted(cuts)
    for left in points[:-1]:
        covering: Set[str] = set()
        for hit, ids in entries.items():
            if hit.start <= left <= hit.end:
                covering |= ids
        yield covering


def _union(sub_intervals, index, strand_mode) -> Set[str]:
    out: Set[str] = set()
    for iv in sub_intervals:
        for ids in _entries(iv, index, strand_mode).values():
            out |= ids
    return out


def _intersection(sub_intervals, index, strand_mode, strict: bool) -> Set[str]:
    running: Optional[Set[str]] = None
    for iv in sub_intervals:
        entries = _entries(iv, index, strand_mode)
        for fs in base_feature_sets(iv, entries):
            if not fs and not strict:
                continue
            if running is None:
                running = set(fs)
            else:
                running &= fs
    return running if running is not None else set()


def resolve(
    sub_intervals: Sequence[GenomicInterval] | Iterable[GenomicInterval],
    index: GenomicIntervalIndex,
    overlap_mode: OverlapMode,
    strand_mode: StrandMode,
) -> Set[str]:
    """
    Features a read overlaps, given its aligned blocks.

    union
        every feature touching any block.
    intersection-nonempty
        features shared by every covered base; uncovered bases are ignored.
    intersection-strict
        features shared by every base; one uncovered base empties the result.

    With a stranded mode only annotation intervals on the block's strand are
    considered. A read with no blocks resolves to the empty set. An unknown
    reference raises ``UnknownChromosome`` in every mode.
    """
    if overlap_mode is OverlapMode.UNION:
        return _union(sub_intervals, index, strand_mode)
    if overlap_mode is OverlapMode.INTERSECTION_NONEMPTY:
        return _intersection(sub_intervals, index, strand_mode, strict=False)
    if overlap_mode is OverlapMode.INTERSECTION_STRICT:
        return _intersection(sub_intervals, index, strand_mode, strict=True)
    raise ValueError(f"unsupported overlap mode {overlap_mode!r}")
