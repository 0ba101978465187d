"""
Sample barcode normalization.

A barcode such as ``TCGA-02-0001-01C-01D-0182-01`` encodes patient, sample,
vial, portion, analyte, plate and center. Two derived keys are used when
joining assay tables:

- vial id: the barcode without its trailing three segments
  (``TCGA-02-0001-01C``)
- portion id: the first five segments (``TCGA-02-0001-01C-01D``)
"""

from dataclasses import dataclass

import pandas as pd

from pancan_immune.errors import MalformedIdentifier


@dataclass(frozen=True)
class BarcodeScheme:
    """Segment arithmetic for one barcoding convention."""
    trailing_segments: int = 3
    portion_segments: int = 5
    min_segments: int = 5
    separator: str = "-"


DEFAULT_SCHEME = BarcodeScheme()


@dataclass(frozen=True)
class Barcode:
    normalized: str
    vial_id: str
    portion_id: str


def normalize_barcode(barcode: str, scheme: BarcodeScheme = DEFAULT_SCHEME) -> str:
    """Strip whitespace and use the scheme separator, e.g. 'TCGA.02.0001' -> 'TCGA-02-0001'."""
    if not isinstance(barcode, str):
        raise MalformedIdentifier(barcode, "not a string")
    normalized = barcode.strip().replace(".", scheme.separator)
    if not normalized:
        raise MalformedIdentifier(barcode, "empty")
    return normalized


def _segments(barcode: str, scheme: BarcodeScheme) -> list[str]:
    normalized = normalize_barcode(barcode, scheme)
    parts = normalized.split(scheme.separator)
    if len(parts) < scheme.min_segments:
        raise MalformedIdentifier(
            barcode, f"{len(parts)} segments, at least {scheme.min_segments} required"
        )
    if any(part == "" for part in parts):
        raise MalformedIdentifier(barcode, "empty segment")
    return parts


def vial_id(barcode: str, scheme: BarcodeScheme = DEFAULT_SCHEME) -> str:
    parts = _segments(barcode, scheme)
    return scheme.separator.join(parts[:-scheme.trailing_segments])


def portion_id(barcode: str, scheme: BarcodeScheme = DEFAULT_SCHEME) -> str:
    parts = _segments(barcode, scheme)
    return scheme.separator.join(parts[:scheme.portion_segments])


def parse_barcode(barcode: str, scheme: BarcodeScheme = DEFAULT_SCHEME) -> Barcode:
    parts = _segments(barcode, scheme)
    return Barcode(
        normalized=scheme.separator.join(parts),
        vial_id=scheme.separator.join(parts[:-scheme.trailing_segments]),
        portion_id=scheme.separator.join(parts[:scheme.portion_segments]),
    )


def add_barcode_keys(
    table: pd.DataFrame,
    barcode_col: str,
    scheme: BarcodeScheme = DEFAULT_SCHEME
) -> pd.DataFrame:
    """
    Return a copy of `table` with 'vial_id' and 'portion_id' columns derived
    from `barcode_col`. Raises MalformedIdentifier on the first invalid barcode.
    """
    if barcode_col not in table.columns:
        raise KeyError(f"Barcode column '{barcode_col}' not found. Available columns: {list(table.columns)}")
    parsed = [parse_barcode(b, scheme) for b in table[barcode_col]]
    out = table.copy()
    out["vial_id"] = [p.vial_id for p in parsed]
    out["portion_id"] = [p.portion_id for p in parsed]
    return out
