from __future__ import annotations
from pathlib import Path
import gzip
from typing import Dict, Iterator, Optional, TextIO

from .errors import AnnotationLoadError
from .featcountClasses import AnnotationRecord


def _open_text_auto(path: str | Path, mode: str = "rt") -> TextIO:
    p = Path(path)
    if p.suffix.lower() == ".gz":
        return gzip.open(p, mode, encoding="utf-8", errors="replace")
    return open(p, mode, encoding="utf-8", errors="replace")


def _is_gtf_path(path: str | Path) -> bool:
    name = Path(path).name.lower()
    if name.endswith(".gz"):
        name = name[:-3]
    return name.endswith(".gtf")


def parse_attrs(attr_field: str, gtf: bool = False) -> Dict[str, str]:
    """
    Parse column 9.

    GFF3: ``ID=g1;Name=abc``. GTF: ``gene_id "g1"; transcript_id "t1";``.
    """
    out: Dict[str, str] = {}
    for kv in attr_field.strip().split(";"):
        kv = kv.strip()
        if not kv:
            continue
        if gtf:
            parts = kv.split(None, 1)
            if len(parts) == 2:
                out[parts[0]] = parts[1].strip().strip('"')
        elif "=" in kv:
            k, v = kv.split("=", 1)
            out[k.strip()] = v.strip()
    return out


def parse_line(line: str, gtf: bool = False, line_no: Optional[int] = None) -> AnnotationRecord:
    cols = line.rstrip("\n").split("\t")
    if len(cols) < 9:
        raise AnnotationLoadError(f"expected 9 tab-separated columns, found {len(cols)}", line_no)
    chrom, _src, feature, start_s, end_s, _score, strand, _phase, attrs = cols[:9]
    try:
        start = int(start_s)
        end = int(end_s)
    except ValueError:
        raise AnnotationLoadError(f"invalid coordinates {start_s!r}..{end_s!r}", line_no) from None
    return AnnotationRecord(
        chrom=chrom,
        feature=feature,
        start=start,
        end=end,
        strand=strand,
        attributes=parse_attrs(attrs, gtf=gtf),
    )


def read_annotation(path: str | Path, gtf: Optional[bool] = None) -> Iterator[AnnotationRecord]:
    """
    Stream a GFF3 or GTF file (optionally .gz) as ``AnnotationRecord``.

    The attribute syntax follows the file extension unless ``gtf`` is given.
    Comment lines and a trailing ``##FASTA`` section are skipped; any other
    malformed line raises ``AnnotationLoadError``.
    """
    if gtf is None:
        gtf = _is_gtf_path(path)
    with _open_text_auto(path) as fh:
        for n, line in enumerate(fh, start=1):
            if not line.strip():
                continue
            if line.startswith("##FASTA"):
                break
            if line.startswith("#"):
                continue
            yield parse_line(line, gtf=gtf, line_no=n)
