import logging
import random

import pytest

from featcount.classify import Verdict, VerdictKind
from featcount.config import CounterConfig
from featcount.count import COUNTERS, CountAggregator, CountTable, count_alignments, count_shards
from featcount.errors import ConfigurationError
from featcount.featcountClasses import AlignmentRecord, GenomicInterval, OverlapMode, StrandMode
from featcount.index import GenomicIntervalIndex


def _index():
    idx = GenomicIntervalIndex()
    idx.insert(GenomicInterval("chr1", 1, 20, "+"), "a")
    idx.insert(GenomicInterval("chr1", 25, 45, "+"), "b")
    idx.insert(GenomicInterval("chr1", 500, 600, "+"), "c")
    return idx.freeze()


def _reads():
    return [
        AlignmentRecord("r1", "chr1", 5, ((11, "M"),)),
        AlignmentRecord("r2", "chr1", 15, ((16, "M"),)),
        AlignmentRecord("r3", "chr1", 23, ((18, "M"),)),
        AlignmentRecord("r4", "chr1", 5, ((11, "M"),), nh=3),
        AlignmentRecord("r5", None, 0, (), is_unmapped=True),
        AlignmentRecord("r6", "chr1", 5, ((11, "M"),), mapq=2),
        AlignmentRecord("r7", "chrUn", 5, ((11, "M"),)),
        AlignmentRecord("r8", "chr1", 200, ((11, "M"),)),
        AlignmentRecord("r9", "chr1", 30, ((5, "M"),), is_secondary=True),
    ]


def test_scenario_counts_union():
    table = count_alignments(_reads(), _index(), CounterConfig(min_mapping_quality=10))
    assert table.features == {"a": 1, "b": 2, "c": 0}
    assert table.counters == {
        "no_feature": 1,
        "ambiguous": 1,
        "too_low_aQual": 1,
        "not_aligned": 1,
        "alignment_not_unique": 1,
        "invalid": 1,
    }
    assert table.total == 9
    assert table.is_conserved()


def test_scenario_counts_strict_with_secondary_ignored():
    cfg = CounterConfig(overlap_mode="intersection-strict", min_mapping_quality=10, ignore_secondary_alignments=True)
    table = count_alignments(_reads(), _index(), cfg)
    assert table.features == {"a": 1, "b": 0, "c": 0}
    assert table["no_feature"] == 3
    assert table["ambiguous"] == 0
    assert table["total"] == 8
    assert table.is_conserved()


@pytest.mark.parametrize("mode", list(OverlapMode))
def test_multi_mapped_never_counted(mode):
    recs = [AlignmentRecord(f"m{i}", "chr1", 5, ((11, "M"),), nh=3) for i in range(4)]
    table = count_alignments(recs, _index(), CounterConfig(overlap_mode=mode))
    assert table["alignment_not_unique"] == 4
    assert table.assigned == 0


def test_single_unmapped_read():
    table = count_alignments([AlignmentRecord("u", None, 0, is_unmapped=True)], _index(), CounterConfig())
    assert table.total == 1
    assert table["not_aligned"] == 1
    assert table.assigned == 0
    assert sum(table.counters.values()) == 1


@pytest.mark.parametrize(
    "bad",
    [
        AlignmentRecord("bad_nh", "chr1", 5, ((11, "M"),), nh="3"),
        AlignmentRecord("bad_cigar", "chr1", 5, "11M"),
        AlignmentRecord("bad_pos", "chr1", "5", ((11, "M"),)),
        AlignmentRecord("bad_mapq", "chr1", 5, ((11, "M"),), mapq="60"),
        AlignmentRecord("bad_op", "chr1", 5, ((11, 0),)),
    ],
)
def test_bad_field_counts_as_invalid_and_stream_continues(bad):
    recs = [
        AlignmentRecord("ok", "chr1", 5, ((11, "M"),)),
        bad,
        AlignmentRecord("ok2", "chr1", 30, ((5, "M"),)),
    ]
    table = count_alignments(recs, _index(), CounterConfig())
    assert table.total == 3
    assert table["invalid"] == 1
    assert table.features == {"a": 1, "b": 1, "c": 0}
    assert table.is_conserved()


def test_finalize_zero_fills_features_not_counters():
    table = CountTable()
    table.accumulate(Verdict(VerdictKind.ASSIGNED, "a"))
    table.finalize(["a", "b"])
    assert table.features == {"a": 1, "b": 0}
    assert table.counters == dict.fromkeys(COUNTERS, 0)


def test_merge_is_commutative_and_associative():
    rng = random.Random(3)
    kinds = list(VerdictKind)
    tables = []
    for _ in range(3):
        t = CountTable()
        for _ in range(50):
            kind = rng.choice(kinds)
            t.accumulate(Verdict(kind, rng.choice("abc") if kind is VerdictKind.ASSIGNED else None))
        tables.append(t)
    x, y, z = tables
    assert x + y == y + x
    assert (x + y) + z == x + (y + z)
    assert (x + y + z).total == 150
    assert (x + y + z).is_conserved()


def test_sharded_run_equals_single_run():
    reads = _reads() * 20
    cfg = CounterConfig(min_mapping_quality=10)
    single = count_alignments(reads, _index(), cfg)
    shards = [reads[i::4] for i in range(4)]
    assert count_shards(shards, _index(), cfg, workers=4) == single


def test_order_independent():
    reads = _reads() * 5
    cfg = CounterConfig(overlap_mode="intersection-nonempty")
    first = count_alignments(reads, _index(), cfg)
    random.Random(11).shuffle(reads)
    assert count_alignments(reads, _index(), cfg) == first


def test_emit_and_reduce_round_trip_matches_aggregator():
    index, cfg = _index(), CounterConfig(min_mapping_quality=10)
    agg = CountAggregator(index, cfg)
    pairs = []
    for rec in _reads():
        verdict = agg.process(rec)
        pairs.extend(verdict.emit())
    assert CountTable.from_pairs(pairs) == agg.table


def test_paired_stream_with_missing_mate(caplog):
    recs = [
        AlignmentRecord("p1", "chr1", 5, ((5, "M"),), is_paired=True, is_read1=True),
        AlignmentRecord("p1", "chr1", 12, ((5, "M"),), is_paired=True, is_read2=True, is_reverse=True),
        AlignmentRecord("p2", "chr1", 30, ((5, "M"),), is_paired=True, is_read1=True),
        AlignmentRecord("p3", "chr1", 5, ((5, "M"),), is_paired=True, is_read1=True),
        AlignmentRecord("p3", "chr1", 35, ((5, "M"),), is_paired=True, is_read2=True, is_reverse=True),
    ]
    agg = CountAggregator(_index(), CounterConfig())
    with caplog.at_level(logging.INFO, logger="featcount"):
        table = agg.run(recs)
    assert agg.missing_mates == 1
    assert table.total == 3
    assert table.features == {"a": 1, "b": 1}
    assert table["ambiguous"] == 1
    assert "paired-end" in caplog.text


def test_forced_single_end_counts_each_record():
    recs = [
        AlignmentRecord("p1", "chr1", 5, ((5, "M"),), is_paired=True, is_read1=True),
        AlignmentRecord("p1", "chr1", 30, ((5, "M"),), is_paired=True, is_read2=True),
    ]
    table = count_alignments(recs, _index(), CounterConfig(paired=False, stranded="no"))
    assert table.total == 2
    assert table.features["a"] == 1 and table.features["b"] == 1


def test_rows_put_counters_last():
    table = count_alignments(_reads()[:1], _index(), CounterConfig())
    rows = table.rows()
    assert rows[:3] == [("a", 1), ("b", 0), ("c", 0)]
    assert [k for k, _ in rows[3:]] == [f"__{c}" for c in COUNTERS]
    assert table.to_dict()["__total"] == 1


def test_config_parses_mode_strings():
    cfg = CounterConfig.from_options(stranded="reverse", overlap_mode="intersection_nonempty", min_mapping_quality=None)
    assert cfg.stranded is StrandMode.REVERSE
    assert cfg.overlap_mode is OverlapMode.INTERSECTION_NONEMPTY
    assert cfg.min_mapping_quality == 0


@pytest.mark.parametrize(
    "options",
    [{"stranded": "maybe"}, {"overlap_mode": "unoin"}, {"min_mapping_quality": -1}, {"feature_type": ""},
     {"colour": "blue"}],
)
def test_config_errors(options):
    with pytest.raises(ConfigurationError):
        CounterConfig.from_options(**options)
