import pytest

from featcount.errors import IndexFrozenError, MalformedRecord, UnknownChromosome
from featcount.featcountClasses import GenomicInterval
from featcount.index import GenomicIntervalIndex


def _index():
    idx = GenomicIntervalIndex()
    idx.insert(GenomicInterval("chr1", 1, 20, "+"), "a")
    idx.insert(GenomicInterval("chr1", 25, 45, "+"), "b")
    idx.insert(GenomicInterval("chr1", 25, 45, "+"), "c")  # shared exon
    idx.insert(GenomicInterval("chr2", 100, 200, "-"), "d")
    return idx


def test_query_is_inclusive_on_both_ends():
    idx = _index()
    assert set(idx.query("chr1", 20, 20)) == {GenomicInterval("chr1", 1, 20, "+")}
    assert set(idx.query("chr1", 21, 24)) == set()
    assert idx.query("chr1", 45, 50) == {GenomicInterval("chr1", 25, 45, "+"): frozenset({"b", "c"})}


def test_query_spanning_several_intervals():
    hits = _index().query("chr1", 15, 30)
    assert {fid for ids in hits.values() for fid in ids} == {"a", "b", "c"}


def test_unknown_chromosome_is_not_empty_result():
    idx = _index()
    assert idx.query("chr2", 1, 10) == {}
    with pytest.raises(UnknownChromosome) as exc:
        idx.query("chrX", 1, 10)
    assert exc.value.chromosome == "chrX"


def test_insert_after_query_is_rejected():
    idx = _index()
    idx.query("chr1", 1, 5)
    assert idx.frozen
    with pytest.raises(IndexFrozenError):
        idx.insert(GenomicInterval("chr1", 50, 60, "+"), "e")


def test_bookkeeping():
    idx = _index()
    assert len(idx) == 3
    assert idx.chromosomes() == ["chr1", "chr2"]
    assert idx.feature_ids() == {"a", "b", "c", "d"}
    assert [str(iv) for iv in idx] == ["chr1:1-20(+)", "chr1:25-45(+)", "chr2:100-200(-)"]


def test_many_intervals():
    idx = GenomicIntervalIndex()
    for i in range(5000):
        idx.insert(GenomicInterval("chr1", i * 10 + 1, i * 10 + 5, "+"), f"g{i}")
    hits = idx.query("chr1", 20001, 20015)
    assert sorted(fid for ids in hits.values() for fid in ids) == ["g2000", "g2001"]


@pytest.mark.parametrize("start,end,strand", [(0, 5, "+"), (10, 5, "+"), (1, 5, "x")])
def test_invalid_interval(start, end, strand):
    with pytest.raises(MalformedRecord):
        GenomicInterval("chr1", start, end, strand)
