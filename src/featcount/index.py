from __future__ import annotations

import logging
from typing import Dict, FrozenSet, Iterator, Set

from intervaltree import IntervalTree

from .errors import IndexFrozenError, UnknownChromosome
from .featcountClasses import GenomicInterval

logger = logging.getLogger("featcount.index")


class GenomicIntervalIndex:
    """
    Per-chromosome store of (interval, feature id) supporting overlap queries.

    The index has two phases. During load, ``insert`` appends entries. The
    first ``query`` (or an explicit ``freeze``) ends the load phase; from then
    on the index is read-only and can be shared between threads without
    locking.

    Each chromosome is an ``IntervalTree`` (O(log n + k) overlap search).
    Intervals are stored half-open as ``[start, end + 1)``; the tree's data is
    the original ``GenomicInterval`` so that strand information survives.
    """

    def __init__(self):
        self._trees: Dict[str, IntervalTree] = {}
        # interval -> feature ids stored under that exact interval
        self._ids: Dict[GenomicInterval, Set[str]] = {}
        self._frozen = False

    def insert(self, interval: GenomicInterval, feature_id: str) -> None:
        if self._frozen:
            raise IndexFrozenError("cannot insert into an index that has been queried")
        if not feature_id:
            raise ValueError("feature id must not be empty")

        ids = self._ids.get(interval)
        if ids is None:
            self._ids[interval] = {feature_id}
            tree = self._trees.get(interval.chrom)
            if tree is None:
                tree = self._trees[interval.chrom] = IntervalTree()
            tree.addi(interval.start, interval.end + 1, interval)
        else:
            ids.add(feature_id)

    def freeze(self) -> "GenomicIntervalIndex":
        if not self._frozen:
            self._frozen = True
            self._ids = {iv: frozenset(ids) for iv, ids in self._ids.items()}
            logger.debug(
                f"Index frozen: {len(self._ids)} intervals on {len(self._trees)} chromosome(s)"
            )
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def has_chromosome(self, chrom: str) -> bool:
        return chrom in self._trees

    def chromosomes(self) -> list[str]:
        return sorted(self._trees)

    def feature_ids(self) -> Set[str]:
        out: Set[str] = set()
        for ids in self._ids.values():
            out |= ids
        return out

    def query(self, chrom: str, start: int, end: int) -> Dict[GenomicInterval, FrozenSet[str]]:
        """
        Return every stored interval on ``chrom`` intersecting ``[start, end]``
        (1-based inclusive) mapped to the feature ids stored under it.

        Raises ``UnknownChromosome`` if nothing was ever inserted on ``chrom``.
        """
        if not self._frozen:
            self.freeze()
        tree = self._trees.get(chrom)
        if tree is None:
            raise UnknownChromosome(chrom)
        if end < start:
            return {}
        return {hit.data: self._ids[hit.data] for hit in tree.overlap(start, end + 1)}

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self) -> Iterator[GenomicInterval]:
        for chrom in self.chromosomes():
            yield from sorted(
                (iv.data for iv in self._trees[chrom]),
                key=lambda g: (g.start, g.end, g.strand),
            )
