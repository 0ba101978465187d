"""
Quality-control exclusion of samples flagged by pathology review or do-not-use annotations.
"""

import logging

import pandas as pd

from .barcodes import DEFAULT_SCHEME, BarcodeScheme, normalize_barcode

logger = logging.getLogger(__name__)

TRUE_STRINGS = {'true', 't', 'yes', 'y', '1'}
FALSE_STRINGS = {'false', 'f', 'no', 'n', '0', ''}


def parse_flag(value) -> bool:
    """Interpret a QC flag cell; nulls count as not flagged."""
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return False
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in TRUE_STRINGS:
            return True
        if lowered in FALSE_STRINGS:
            return False
        raise ValueError(f"Unrecognized QC flag value: {value!r}")
    return bool(value)


def build_exclusion_set(
    qc_table: pd.DataFrame,
    barcode_col: str = 'aliquot_barcode',
    flag_cols: list[str] = ('Do_not_use', 'AWG_excluded_because_of_pathology'),
    scheme: BarcodeScheme = DEFAULT_SCHEME
) -> frozenset:
    """
    Collect normalized barcodes whose QC record sets any of `flag_cols`.

    Parameters:
    -----------
    qc_table : pd.DataFrame
        Quality-control annotations, one row per barcode
    barcode_col : str
        Column holding the barcode
    flag_cols : list of str
        Boolean flag columns; a row is excluded if any is true

    Returns:
    --------
    frozenset
        Normalized barcodes to remove from every downstream table
    """
    missing_cols = [col for col in [barcode_col, *flag_cols] if col not in qc_table.columns]
    if missing_cols:
        raise KeyError(f"QC table is missing required columns: {missing_cols}")

    flagged = pd.Series(False, index=qc_table.index)
    for col in flag_cols:
        col_flags = qc_table[col].map(parse_flag).astype(bool)
        logger.info(f"QC flag '{col}' set for {int(col_flags.sum())} of {len(qc_table)} records")
        flagged = flagged | col_flags

    exclusion = frozenset(
        normalize_barcode(b, scheme) for b in qc_table.loc[flagged, barcode_col]
    )
    logger.info(f"Exclusion set contains {len(exclusion)} barcodes")
    return exclusion


def filter_excluded(
    table: pd.DataFrame,
    exclusion: frozenset,
    barcode_col: str,
    scheme: BarcodeScheme = DEFAULT_SCHEME
) -> pd.DataFrame:
    """Return a new table without rows whose normalized barcode is in `exclusion`."""
    if barcode_col not in table.columns:
        raise KeyError(f"Barcode column '{barcode_col}' not found. Available columns: {list(table.columns)}")

    total_before = len(table)
    keep = ~table[barcode_col].map(lambda b: normalize_barcode(b, scheme) in exclusion)
    filtered = table.loc[keep].copy()
    excluded_count = total_before - len(filtered)

    if excluded_count > 0:
        logger.info(
            f"Removed {excluded_count} excluded rows ({excluded_count / total_before:.1%} of table), "
            f"{len(filtered)} remaining"
        )
    else:
        logger.info(f"No excluded samples found among {total_before} rows")
    return filtered
