from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .errors import ConfigurationError
from .featcountClasses import OverlapMode, StrandMode


def _parse_enum(enum_cls, value, option: str):
    if isinstance(value, enum_cls):
        return value
    key = str(value).strip().lower().replace("_", "-")
    for member in enum_cls:
        if member.value == key:
            return member
    allowed = ", ".join(m.value for m in enum_cls)
    raise ConfigurationError(f"Unknown {option} '{value}' (expected one of: {allowed})")


@dataclass(frozen=True)
class CounterConfig:
    """
    Counting options, fixed once before the first record is read.

    Mode strings are accepted and converted to enums here so that no string
    comparison happens in the per-record path.
    """
    stranded: StrandMode = StrandMode.YES
    overlap_mode: OverlapMode = OverlapMode.UNION
    feature_type: str = "exon"
    attribute_id: str = "gene_id"
    min_mapping_quality: int = 0
    remove_non_unique: bool = True
    ignore_secondary_alignments: bool = False
    split_attribute_values: bool = False
    paired: Optional[bool] = None  # None: decided from the first record

    def __post_init__(self):
        object.__setattr__(self, "stranded", _parse_enum(StrandMode, self.stranded, "stranded mode"))
        object.__setattr__(self, "overlap_mode", _parse_enum(OverlapMode, self.overlap_mode, "overlap mode"))
        if not self.feature_type:
            raise ConfigurationError("feature type must not be empty")
        if not self.attribute_id:
            raise ConfigurationError("attribute id must not be empty")
        if not isinstance(self.min_mapping_quality, int) or self.min_mapping_quality < 0:
            raise ConfigurationError(
                f"minimum mapping quality must be a non-negative integer, got {self.min_mapping_quality!r}"
            )

    @classmethod
    def from_options(cls, **options) -> "CounterConfig":
        """Build from loosely typed options (e.g. ``stranded="reverse"``); unknown keys are an error."""
        known = set(cls.__dataclass_fields__)
        unknown = sorted(set(options) - known)
        if unknown:
            raise ConfigurationError(f"Unknown option(s): {', '.join(unknown)}")
        return cls(**{k: v for k, v in options.items() if v is not None or k == "paired"})
