import argparse
import logging
from pathlib import Path
from typing import List, Optional

from .annotation import load_annotation
from .bam import expand_bam_patterns, read_alignments, sample_name
from .config import CounterConfig
from .count import CountTable, count_alignments
from .errors import AnnotationLoadError, ConfigurationError
from .gfftools import read_annotation


def _make_logger(level: str) -> logging.Logger:
    lvl = getattr(logging, level.upper(), logging.INFO)
    logger = logging.getLogger("featcount")
    # Configure once
    if not logger.handlers:
        handler = logging.StreamHandler()
        fmt = logging.Formatter("[%(levelname)s] %(message)s")
        handler.setFormatter(fmt)
        logger.addHandler(handler)
    logger.setLevel(lvl)
    return logger


def write_count_table(tables: List[CountTable], samples: List[str], out_path: str | Path) -> Path:
    """
    Write one column per sample. Feature rows are sorted by id and followed
    by the ``__`` counter rows.
    """
    outp = Path(out_path)
    outp.parent.mkdir(parents=True, exist_ok=True)
    rows = [t.to_dict() for t in tables]
    keys = [k for k, _ in tables[0].rows()] + ["__total"] if tables else []
    with open(outp, "w", encoding="utf-8") as fh:
        fh.write("Id\t" + "\t".join(samples) + "\n")
        for key in keys:
            fh.write(key + "\t" + "\t".join(str(r.get(key, 0)) for r in rows) + "\n")
    return outp


def count_matrix(
    bam_paths: List[str],
    annotation_path: str | Path,
    out_path: str | Path,
    *,
    config: CounterConfig,
    gtf: Optional[bool] = None,
    log_level: str = "INFO",
    log_reads: int = 0,
) -> int:
    """
    Count each BAM against one annotation and write a feature x sample matrix.
    """
    logger = _make_logger(log_level)

    try:
        index, known = load_annotation(read_annotation(annotation_path, gtf=gtf), config)
    except AnnotationLoadError as e:
        logger.error(f"{annotation_path}: {e}")
        return 2
    except OSError as e:
        logger.error(f"Could not read annotation {annotation_path}: {e}")
        return 1

    bam_list = expand_bam_patterns(bam_paths)
    if not bam_list:
        logger.error("No BAMs found.")
        return 1

    logger.info(
        f"{len(bam_list)} BAM(s) to process; stranded={config.stranded.value}, "
        f"mode={config.overlap_mode.value}, minaqual={config.min_mapping_quality}"
    )

    tables: List[CountTable] = []
    for b in bam_list:
        logger.info(f"Counting {b}")
        try:
            tables.append(
                count_alignments(read_alignments(b), index, config, known, logger=logger, log_reads=log_reads)
            )
        except (RuntimeError, OSError) as e:
            logger.error(f"{b}: {e}")
            return 1

    samples = [sample_name(b) for b in bam_list]
    outp = write_count_table(tables, samples, out_path)
    logger.info(f"Wrote counts to {outp} with {len(known)} features and {len(samples)} samples")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "count":
        paired = {"auto": None, "yes": True, "no": False}[args.paired]
        try:
            config = CounterConfig.from_options(
                stranded=args.stranded,
                overlap_mode=args.mode,
                feature_type=args.type,
                attribute_id=args.idattr,
                min_mapping_quality=args.minaqual,
                remove_non_unique=not args.keep_non_unique,
                ignore_secondary_alignments=args.ignore_secondary,
                split_attribute_values=args.split_attribute_values,
                paired=paired,
            )
        except ConfigurationError as e:
            print(f"[ERROR] {e}")
            return 2
        gtf = {"auto": None, "gtf": True, "gff": False}[args.format]
        return count_matrix(
            bam_paths=args.bams,
            annotation_path=args.annotation,
            out_path=args.out,
            config=config,
            gtf=gtf,
            log_level=args.log_level,
            log_reads=args.log_reads,
        )
    else:
        parser.error("Unknown command")

    return 2


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="featcount",
        description="Count reads per annotated feature (htseq-count style) with bamnostic."
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    c = sub.add_parser(
        "count",
        help="Count reads overlapping annotated features across one or more BAMs; produces a count table."
    )
    c.add_argument(
        "bams",
        nargs="+",
        help="One or more BAM files or glob patterns. Paired-end BAMs must keep mates adjacent (name-sorted)."
    )
    c.add_argument(
        "--annotation", "--gff",
        dest="annotation",
        required=True,
        help="GFF3 or GTF annotation (.gz accepted)."
    )
    c.add_argument(
        "--format",
        choices=["auto", "gtf", "gff"],
        default="auto",
        help="Attribute syntax of the annotation; 'auto' decides from the file extension."
    )
    c.add_argument(
        "--out",
        required=True,
        help="Output TSV path."
    )
    c.add_argument(
        "-s", "--stranded",
        choices=["yes", "no", "reverse"],
        default="yes",
        help="Whether the data is from a strand-specific assay (default: yes)."
    )
    c.add_argument(
        "-m", "--mode",
        choices=["union", "intersection-strict", "intersection-nonempty"],
        default="union",
        help="Mode to handle reads overlapping more than one feature (default: union)."
    )
    c.add_argument(
        "-t", "--type",
        default="exon",
        help="Feature type (3rd column) to use; all other features are ignored (default: exon)."
    )
    c.add_argument(
        "-i", "--idattr",
        default="gene_id",
        help="Attribute to use as feature id (default: gene_id)."
    )
    c.add_argument(
        "-a", "--minaqual",
        type=int,
        default=0,
        help="Skip reads with a mapping quality below this value (default: 0)."
    )
    c.add_argument(
        "--keep-non-unique",
        action="store_true",
        help="Do not set aside reads whose NH tag is greater than 1."
    )
    c.add_argument(
        "--ignore-secondary",
        action="store_true",
        help="Skip secondary and supplementary alignments entirely."
    )
    c.add_argument(
        "--split-attribute-values",
        action="store_true",
        help="Treat a comma-separated id attribute as several features."
    )
    c.add_argument(
        "--paired",
        choices=["auto", "yes", "no"],
        default="auto",
        help="Paired-end input; 'auto' looks at the first record."
    )
    # Debugging assistance
    c.add_argument(
        "--log-level",
        default="INFO",
        choices=["ERROR", "WARNING", "INFO", "DEBUG"],
        help="Logging verbosity (default: INFO)."
    )
    c.add_argument(
        "--log-reads",
        type=int,
        default=0,
        help="When DEBUG, log the verdict of the first N reads per BAM (default: 0)."
    )
    return p


if __name__ == "__main__":
    raise SystemExit(main())
