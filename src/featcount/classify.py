from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

from .cigar import record_intervals
from .config import CounterConfig
from .errors import MalformedRecord, UnknownChromosome
from .featcountClasses import AlignmentRecord, GenomicInterval
from .index import GenomicIntervalIndex
from .overlap import resolve

logger = logging.getLogger("featcount.classify")


class VerdictKind(Enum):
    """Outcome of one read or pair; the value is the counter name."""
    ASSIGNED = "assigned"
    NO_FEATURE = "no_feature"
    AMBIGUOUS = "ambiguous"
    LOW_QUALITY = "too_low_aQual"
    UNMAPPED = "not_aligned"
    MULTI_MAPPED = "alignment_not_unique"
    INVALID = "invalid"


@dataclass(frozen=True)
class Verdict:
    kind: VerdictKind
    feature_id: Optional[str] = None
    reason: Optional[str] = None

    def emit(self) -> List[Tuple[str, int]]:
        """(key, 1) pairs for an external map/reduce summation."""
        key = self.feature_id if self.kind is VerdictKind.ASSIGNED else f"__{self.kind.value}"
        return [(key, 1), ("__total", 1)]


UNMAPPED = Verdict(VerdictKind.UNMAPPED)
MULTI_MAPPED = Verdict(VerdictKind.MULTI_MAPPED)
LOW_QUALITY = Verdict(VerdictKind.LOW_QUALITY)
NO_FEATURE = Verdict(VerdictKind.NO_FEATURE)
AMBIGUOUS = Verdict(VerdictKind.AMBIGUOUS)


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def check_record(rec: AlignmentRecord) -> None:
    """Raise ``MalformedRecord`` if a field the classifier reads has the wrong type."""
    if rec.nh is not None and not _is_int(rec.nh):
        raise MalformedRecord(f"{rec.read_name}: NH tag is not an integer ({rec.nh!r})")
    if rec.mapq is not None and not _is_int(rec.mapq):
        raise MalformedRecord(f"{rec.read_name}: mapping quality is not an integer ({rec.mapq!r})")
    if rec.is_unmapped:
        return
    if not _is_int(rec.pos):
        raise MalformedRecord(f"{rec.read_name}: position is not an integer ({rec.pos!r})")
    if not isinstance(rec.cigar, (tuple, list)):
        raise MalformedRecord(f"{rec.read_name}: CIGAR is not a sequence of (length, op) pairs")
    for element in rec.cigar:
        if not (isinstance(element, (tuple, list)) and len(element) == 2 and isinstance(element[1], str)):
            raise MalformedRecord(f"{rec.read_name}: invalid CIGAR element {element!r}")


def pair_mates(records: Iterable[AlignmentRecord]) -> Iterator[Tuple[AlignmentRecord, ...]]:
    """
    Group a mate-adjacent stream (e.g. name-sorted BAM) into reads.

    Unpaired records are yielded alone. Two adjacent paired records with the
    same name and opposite mate flags form a pair; a paired record whose mate
    does not follow is yielded alone.
    """
    pending: Optional[AlignmentRecord] = None
    for rec in records:
        if not rec.is_paired:
            if pending is not None:
                yield (pending,)
                pending = None
            yield (rec,)
            continue
        if pending is None:
            pending = rec
            continue
        if pending.read_name == rec.read_name and pending.is_read1 != rec.is_read1:
            yield (pending, rec) if pending.is_read1 else (rec, pending)
            pending = None
        else:
            yield (pending,)
            pending = rec
    if pending is not None:
        yield (pending,)


class AlignmentClassifier:
    """
    Turn one read (single-end) or one pair of mates into a ``Verdict``.

    Filters run in a fixed order: unmapped, multi-mapped, low mapping
    quality, then overlap resolution against the index. Malformed records and
    references missing from the annotation end up as ``invalid``.
    """

    def __init__(self, index: GenomicIntervalIndex, config: CounterConfig):
        self.index = index.freeze()
        self.config = config

    def _dropped(self, rec: AlignmentRecord) -> bool:
        return self.config.ignore_secondary_alignments and (rec.is_secondary or rec.is_supplementary)

    def classify(self, *mates: AlignmentRecord) -> Optional[Verdict]:
        """
        Classify a read or a pair. Returns None when every mate is a dropped
        secondary/supplementary alignment (nothing to count).
        """
        mates = tuple(m for m in mates if m is not None and not self._dropped(m))
        if not mates:
            return None
        try:
            return self._classify(mates)
        except (MalformedRecord, UnknownChromosome) as e:
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug(f"{mates[0].read_name}: invalid record ({e})")
            return Verdict(VerdictKind.INVALID, reason=str(e))

    def _classify(self, mates: Sequence[AlignmentRecord]) -> Verdict:
        cfg = self.config
        for m in mates:
            check_record(m)

        mapped = [m for m in mates if not m.is_unmapped]
        if not mapped:
            return UNMAPPED

        if cfg.remove_non_unique and any(m.nh is not None and m.nh > 1 for m in mates):
            return MULTI_MAPPED

        # negative quality is the "unset" sentinel of some aligners
        if any(m.mapq is not None and 0 <= m.mapq < cfg.min_mapping_quality for m in mapped):
            return LOW_QUALITY

        blocks: List[GenomicInterval] = []
        for m in mapped:
            blocks.extend(record_intervals(m, cfg.stranded))

        features = resolve(blocks, self.index, cfg.overlap_mode, cfg.stranded)
        if not features:
            return NO_FEATURE
        if len(features) == 1:
            return Verdict(VerdictKind.ASSIGNED, next(iter(features)))
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"{mates[0].read_name}: ambiguous {sorted(features)}")
        return AMBIGUOUS
