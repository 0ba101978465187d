"""
Typed errors raised or recorded by the reconciliation and statistics steps.
"""


class AnalysisError(Exception):
    """Base class for analysis errors."""


class MalformedIdentifier(AnalysisError, ValueError):
    """A sample barcode failed segment-count validation."""

    def __init__(self, barcode, reason):
        self.barcode = barcode
        super().__init__(f"Malformed barcode {barcode!r}: {reason}")


class UnmatchedJoin(AnalysisError):
    """Join keys of one table were absent from its counterpart."""

    def __init__(self, side, keys):
        self.side = side
        self.keys = sorted(keys)
        super().__init__(f"{len(self.keys)} vial ids from table {side} have no counterpart")


class AllMissingFeature(AnalysisError):
    """A feature has no non-null values within a group."""


class InsufficientGroups(AnalysisError):
    """Fewer than two groups are available for a comparison."""


class InsufficientSamples(AnalysisError):
    """Too few paired observations for an association test."""


class DegenerateTest(AnalysisError):
    """The statistics library rejected the input (e.g. all values identical)."""
