from __future__ import annotations

import logging
from typing import Iterable, List, Set, Tuple

from .config import CounterConfig
from .errors import AnnotationLoadError, MalformedRecord
from .featcountClasses import STRANDS, AnnotationRecord, GenomicInterval
from .index import GenomicIntervalIndex

logger = logging.getLogger("featcount.annotation")


def _split_ids(value: str, split: bool) -> List[str]:
    if not split:
        return [value]
    return [v.strip() for v in value.split(",") if v.strip()]


def load_annotation(
    records: Iterable[AnnotationRecord],
    config: CounterConfig,
    index: GenomicIntervalIndex | None = None,
) -> Tuple[GenomicIntervalIndex, Set[str]]:
    """
    Build the feature index from annotation records.

    Only records whose type equals ``config.feature_type`` are used; the
    feature id is the value of ``config.attribute_id``. Any selected record
    that cannot be indexed aborts the load with ``AnnotationLoadError``.

    Returns the frozen index and the set of known feature ids.
    """
    index = index if index is not None else GenomicIntervalIndex()
    known: Set[str] = set()
    stranded = config.stranded.is_stranded
    seen = 0
    used = 0

    for n, rec in enumerate(records, start=1):
        seen += 1
        if rec.feature != config.feature_type:
            continue

        value = rec.attributes.get(config.attribute_id)
        if not value:
            raise AnnotationLoadError(
                f"feature {config.feature_type} does not contain a {config.attribute_id} attribute", n
            )
        if rec.strand not in STRANDS:
            raise AnnotationLoadError(f"invalid strand {rec.strand!r}", n)
        if stranded and rec.strand == ".":
            raise AnnotationLoadError(
                f"feature {config.feature_type} ({value}) has no strand information "
                f"but counting runs in stranded mode '{config.stranded.value}'",
                n,
            )

        try:
            interval = GenomicInterval(
                rec.chrom, int(rec.start), int(rec.end), rec.strand if stranded else "."
            )
        except (MalformedRecord, TypeError, ValueError) as e:
            raise AnnotationLoadError(str(e), n) from e

        ids = _split_ids(value, config.split_attribute_values)
        if not ids:
            raise AnnotationLoadError(f"empty {config.attribute_id} attribute", n)
        for fid in ids:
            index.insert(interval, fid)
            known.add(fid)
        used += 1

    if not known:
        raise AnnotationLoadError(f"No features of type '{config.feature_type}' found.")

    index.freeze()
    logger.info(
        f"Annotation loaded: {used} {config.feature_type} record(s) of {seen}; "
        f"{len(known)} feature(s) on {len(index.chromosomes())} chromosome(s)"
    )
    if logger.isEnabledFor(logging.DEBUG):
        for chrom in index.chromosomes()[:20]:
            logger.debug(f"  chromosome {chrom!r} indexed")
    return index, known
