"""
Data Processing module for reconciling and aggregating assay tables.

This package provides utilities for:
- Barcode normalization into vial and portion ids
- QC exclusion of flagged samples
- Matching samples across assay tables on vial and portion id
- Long-to-wide aggregation of replicate measurements
"""

from .aggregation import missing_features, to_long, to_wide
from .barcodes import (
    DEFAULT_SCHEME,
    Barcode,
    BarcodeScheme,
    add_barcode_keys,
    normalize_barcode,
    parse_barcode,
    portion_id,
    vial_id,
)
from .exclusion import build_exclusion_set, filter_excluded
from .matching import MatchResult, build_matched_cohort, match_samples
from .utils import load_csv, load_table_with_logging, save_results, setup_logging
