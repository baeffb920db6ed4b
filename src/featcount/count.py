from __future__ import annotations

import itertools
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .classify import AlignmentClassifier, Verdict, VerdictKind, pair_mates
from .config import CounterConfig
from .errors import FeatCountError
from .featcountClasses import AlignmentRecord
from .index import GenomicIntervalIndex

COUNTERS = (
    "no_feature",
    "ambiguous",
    "too_low_aQual",
    "not_aligned",
    "alignment_not_unique",
    "invalid",
)


class CountTable:
    """
    Per-feature read counts plus the fixed diagnostic counters.

    A table is owned by one shard. Tables from independent shards combine
    with ``merge`` (or ``+``), a per-key sum, so the order in which shards
    are combined never changes the result.
    """

    def __init__(self):
        self.features: Dict[str, int] = {}
        self.counters: Dict[str, int] = dict.fromkeys(COUNTERS, 0)
        self.total = 0

    def accumulate(self, verdict: Verdict) -> None:
        self.total += 1
        if verdict.kind is VerdictKind.ASSIGNED:
            self.features[verdict.feature_id] = self.features.get(verdict.feature_id, 0) + 1
        else:
            self.counters[verdict.kind.value] += 1

    def finalize(self, known_ids: Iterable[str]) -> "CountTable":
        for fid in known_ids:
            self.features.setdefault(fid, 0)
        return self

    def merge(self, other: "CountTable") -> "CountTable":
        out = CountTable()
        for table in (self, other):
            for fid, n in table.features.items():
                out.features[fid] = out.features.get(fid, 0) + n
            for name, n in table.counters.items():
                out.counters[name] += n
            out.total += table.total
        return out

    __add__ = merge

    @classmethod
    def from_pairs(cls, pairs: Iterable[Tuple[str, int]]) -> "CountTable":
        """Rebuild a table from ``Verdict.emit`` output (the reduce side)."""
        table = cls()
        for key, n in pairs:
            if key == "__total":
                table.total += n
            elif key.startswith("__") and key[2:] in table.counters:
                table.counters[key[2:]] += n
            else:
                table.features[key] = table.features.get(key, 0) + n
        return table

    def __getitem__(self, key: str) -> int:
        if key == "total":
            return self.total
        if key in self.counters:
            return self.counters[key]
        return self.features[key]

    def __eq__(self, other) -> bool:
        if not isinstance(other, CountTable):
            return NotImplemented
        return (self.features, self.counters, self.total) == (other.features, other.counters, other.total)

    def __repr__(self) -> str:
        return f"CountTable(features={len(self.features)}, total={self.total}, counters={self.counters})"

    @property
    def assigned(self) -> int:
        return sum(self.features.values())

    def is_conserved(self) -> bool:
        return self.total == self.assigned + sum(self.counters.values())

    def rows(self) -> List[Tuple[str, int]]:
        """Feature rows sorted by id, then the ``__`` counter rows in fixed order."""
        out = [(fid, self.features[fid]) for fid in sorted(self.features)]
        out.extend((f"__{name}", self.counters[name]) for name in COUNTERS)
        return out

    def to_dict(self) -> Dict[str, int]:
        out = dict(self.rows())
        out["__total"] = self.total
        return out


class CountAggregator:
    """
    Shard-local counting loop: records in, one verdict per read/pair, one
    increment per verdict. Per-record errors never leave ``run``.
    """

    progress_every = 100000

    def __init__(
        self,
        index: GenomicIntervalIndex,
        config: CounterConfig,
        logger: logging.Logger | None = None,
        log_reads: int = 0,
    ):
        self.config = config
        self.classifier = AlignmentClassifier(index, config)
        self.table = CountTable()
        self.logger = logger or logging.getLogger("featcount.count")
        self.log_reads = log_reads
        self.records_seen = 0
        self.missing_mates = 0
        self._reads_logged = 0

    def accumulate(self, verdict: Optional[Verdict]) -> None:
        if verdict is not None:
            self.table.accumulate(verdict)

    def process(self, *mates: AlignmentRecord) -> Optional[Verdict]:
        verdict = self.classifier.classify(*mates)
        self.accumulate(verdict)
        if (
            verdict is not None
            and self._reads_logged < self.log_reads
            and self.logger.isEnabledFor(logging.DEBUG)
        ):
            self._reads_logged += 1
            self.logger.debug(
                f"{mates[0].read_name}: {verdict.kind.value}"
                + (f" -> {verdict.feature_id}" if verdict.feature_id else "")
            )
        return verdict

    def _reads(self, records: Iterable[AlignmentRecord]):
        it = iter(records)
        paired = self.config.paired
        if paired is None:
            first = next(it, None)
            if first is None:
                return
            paired = first.is_paired
            self.logger.info(f"Input detected as {'paired' if paired else 'single'}-end")
            it = itertools.chain([first], it)
        if not paired:
            for rec in it:
                yield (rec,)
            return
        for mates in pair_mates(it):
            if mates[0].is_paired and len(mates) == 1:
                self.missing_mates += 1
            yield mates

    def run(self, records: Iterable[AlignmentRecord]) -> CountTable:
        for mates in self._reads(records):
            self.records_seen += len(mates)
            if self.records_seen % self.progress_every < len(mates):
                self.logger.info(f"Processed {self.records_seen:,} alignments...")
            try:
                self.process(*mates)
            except (FeatCountError, TypeError, ValueError) as e:
                # anything the classifier did not already contain
                self.logger.debug(f"{mates[0].read_name}: invalid record ({e})")
                self.table.accumulate(Verdict(VerdictKind.INVALID, reason=str(e)))
        return self.table

    def summary(self) -> str:
        c = self.table.counters
        return (
            f"total={self.table.total}, assigned={self.table.assigned}, "
            + ", ".join(f"{name}={c[name]}" for name in COUNTERS)
            + f", missing_mates={self.missing_mates}"
        )


def count_alignments(
    records: Iterable[AlignmentRecord],
    index: GenomicIntervalIndex,
    config: CounterConfig,
    known_ids: Iterable[str] | None = None,
    *,
    logger: logging.Logger | None = None,
    log_reads: int = 0,
) -> CountTable:
    """Count one stream of alignments and return the finalized table."""
    agg = CountAggregator(index, config, logger=logger, log_reads=log_reads)
    table = agg.run(records)
    agg.logger.info(f"Done: {agg.summary()}")
    return table.finalize(known_ids if known_ids is not None else index.feature_ids())


def count_shards(
    shards: Sequence[Iterable[AlignmentRecord]],
    index: GenomicIntervalIndex,
    config: CounterConfig,
    known_ids: Iterable[str] | None = None,
    *,
    workers: int = 4,
) -> CountTable:
    """
    Count independent shards on a thread pool against one shared index and
    sum their tables.

    This is a local stand-in for the external reduce step: in a distributed
    run each task returns its own ``CountTable`` (or ``Verdict.emit`` pairs)
    and the caller sums them; the engine itself never coordinates shards.
    """
    index.freeze()
    known = set(known_ids) if known_ids is not None else index.feature_ids()

    def _one(records):
        return CountAggregator(index, config).run(records)

    total = CountTable()
    with ThreadPoolExecutor(max_workers=max(1, workers)) as pool:
        for table in pool.map(_one, shards):
            total = total + table
    return total.finalize(known)
