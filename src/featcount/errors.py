from __future__ import annotations


class FeatCountError(Exception):
    """Base class for every error raised by featcount."""


class ConfigurationError(FeatCountError):
    """Bad option value (unknown mode string, negative quality, ...). Fatal at startup."""


class AnnotationLoadError(FeatCountError):
    """Annotation could not be turned into an index. Fatal at startup."""

    def __init__(self, message: str, line: int | None = None):
        if line is not None:
            message = f"annotation record {line}: {message}"
        super().__init__(message)
        self.line = line


class MalformedRecord(FeatCountError):
    """A single alignment record cannot be interpreted. The record is counted as invalid."""


class UnknownChromosome(FeatCountError):
    """The reference of an alignment is absent from the annotation index."""

    def __init__(self, chromosome: str):
        super().__init__(f"Unknown chromosome: {chromosome}")
        self.chromosome = chromosome


class IndexFrozenError(FeatCountError):
    """Insert attempted on an index that is already serving queries."""
