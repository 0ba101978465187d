import logging

import pandas as pd

logger = logging.getLogger(__name__)


def to_wide(
    long: pd.DataFrame,
    sample_col: str = 'sample_id',
    feature_col: str = 'feature_name',
    value_col: str = 'value',
    strict: bool = False,
    feature_order: list[str] = None
) -> pd.DataFrame:
    """
    Collapse duplicate replicates by their mean per (sample, feature), then
    pivot to one row per sample and one column per feature.

    In strict mode any feature with a missing value for some sample is dropped
    entirely; otherwise missing cells are kept as NaN. Columns are sorted
    alphabetically unless `feature_order` is given, in which case it is
    followed and any remaining features are appended in sorted order.

    Values come back as float since the replicate mean is taken. To rebuild
    a wide table `w` from `to_long(w)` with its own column order, pass
    `feature_order=list(w.columns)`.
    """
    missing_cols = [c for c in (sample_col, feature_col, value_col) if c not in long.columns]
    if missing_cols:
        raise KeyError(f"Long table is missing required columns: {missing_cols}")

    keyed = long[long[sample_col].notna() & long[feature_col].notna()]
    if len(keyed) < len(long):
        logger.warning(f"Dropped {len(long) - len(keyed)} rows with a null sample or feature key")

    keyed = keyed.assign(**{value_col: pd.to_numeric(keyed[value_col])})
    means = keyed.groupby([sample_col, feature_col], sort=False)[value_col].mean()
    n_duplicates = len(keyed) - len(means)
    if n_duplicates > 0:
        logger.info(f"Averaged {n_duplicates} duplicate replicate rows")

    wide = means.unstack(feature_col)

    features = sorted(wide.columns)
    if feature_order is not None:
        ordered = [f for f in feature_order if f in wide.columns]
        features = ordered + [f for f in features if f not in ordered]
    wide = wide.reindex(index=pd.unique(keyed[sample_col]), columns=features)
    wide.index.name = sample_col
    wide.columns.name = None

    if strict:
        incomplete = missing_features(wide)
        if incomplete:
            logger.warning(f"Strict mode: dropping {len(incomplete)} features with missing samples")
            wide = wide.drop(columns=incomplete)

    logger.info(f"Wide table: {wide.shape[0]} samples x {wide.shape[1]} features")
    return wide


def to_long(
    wide: pd.DataFrame,
    sample_col: str = 'sample_id',
    feature_col: str = 'feature_name',
    value_col: str = 'value'
) -> pd.DataFrame:
    """
    Inverse of `to_wide`; null cells are kept as rows with a NaN value.

    `to_wide(to_long(w), feature_order=list(w.columns))` reproduces a float
    table `w` exactly; without `feature_order` its columns come back sorted.
    """
    long = wide.rename_axis(index=sample_col, columns=None).reset_index()
    return long.melt(id_vars=sample_col, var_name=feature_col, value_name=value_col)


def missing_features(wide: pd.DataFrame) -> list[str]:
    """Features with at least one missing cell."""
    return [col for col in wide.columns if wide[col].isna().any()]
