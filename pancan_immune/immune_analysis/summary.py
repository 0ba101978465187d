"""
Statistical Summarizer
Grouped summaries, per-feature group comparisons and correlations with
Benjamini-Hochberg correction per comparison batch
"""

import logging
from dataclasses import dataclass, field

import numpy as np
import pandas as pd
from scipy import stats
from statsmodels.stats.multitest import multipletests

from pancan_immune.errors import (
    AllMissingFeature,
    DegenerateTest,
    InsufficientGroups,
    InsufficientSamples,
)

logger = logging.getLogger(__name__)

GROUP_TESTS = {
    'kruskal': stats.kruskal,
    'anova': stats.f_oneway,
}

CORRELATION_TESTS = {
    'spearman': stats.spearmanr,
    'pearson': stats.pearsonr,
}

FAILURE_COLUMNS = ['feature', 'group', 'error', 'message']


@dataclass
class BatchResult:
    """Per-feature statistics of one comparison batch and the features that failed."""
    results: pd.DataFrame
    failures: pd.DataFrame = field(default_factory=lambda: pd.DataFrame(columns=FAILURE_COLUMNS))

    def significant(self, alpha: float = 0.05) -> pd.DataFrame:
        return self.results[self.results['p_adjusted'] < alpha]


def _failure(feature, group, error: Exception) -> dict:
    return {
        'feature': feature,
        'group': group,
        'error': type(error).__name__,
        'message': str(error),
    }


def log_transform(values, base: float = 2):
    """log(x + 1) in the given base; used for raw (non-log) expression values."""
    if base == np.e:
        return np.log1p(values)
    return np.log1p(values) / np.log(base)


def adjust_pvalues(pvalues) -> pd.Series:
    """
    Benjamini-Hochberg adjusted p-values. Null p-values stay null and are not
    counted in the number of tests.
    """
    pvalues = pd.Series(pvalues, dtype=float)
    adjusted = pd.Series(np.nan, index=pvalues.index, dtype=float)
    valid = pvalues.notna()
    if valid.any():
        adjusted[valid] = multipletests(pvalues[valid], method='fdr_bh')[1]
    return adjusted


def summarize_groups(
    table: pd.DataFrame,
    group_col: str,
    value_col: str,
    raw: bool = False,
    log_base: float = 2
) -> BatchResult:
    """
    Median, non-null count and variance of `value_col` per group.

    Groups with no non-null values are left out of the summary and recorded
    as AllMissingFeature failures.
    """
    for col in (group_col, value_col):
        if col not in table.columns:
            raise KeyError(f"Column '{col}' not found in table")

    values = pd.to_numeric(table[value_col])
    if raw:
        values = log_transform(values, log_base)

    rows, failures = [], []
    for group, group_values in values.groupby(table[group_col], sort=True):
        group_values = group_values.dropna()
        if group_values.empty:
            error = AllMissingFeature(f"No non-null '{value_col}' values in group {group!r}")
            logger.warning(str(error))
            failures.append(_failure(value_col, group, error))
            continue
        rows.append({
            'group': group,
            'median': group_values.median(),
            'count': len(group_values),
            'variance': group_values.var(),
        })

    results = pd.DataFrame(rows, columns=['group', 'median', 'count', 'variance'])
    return BatchResult(results=results, failures=pd.DataFrame(failures, columns=FAILURE_COLUMNS))


def _finish_batch(rows: list, failures: list, size_col: str) -> BatchResult:
    columns = ['feature', 'statistic', 'p_value', 'p_adjusted', size_col]
    results = pd.DataFrame(rows, columns=[c for c in columns if c != 'p_adjusted'])
    results['p_adjusted'] = adjust_pvalues(results['p_value']).values
    results = (
        results[columns]
        .sort_values('statistic', ascending=False, kind='mergesort')
        .reset_index(drop=True)
    )
    return BatchResult(results=results, failures=pd.DataFrame(failures, columns=FAILURE_COLUMNS))


def compare_groups(
    wide: pd.DataFrame,
    groups,
    features: list[str] = None,
    test: str = 'kruskal',
    raw: bool = False,
    min_group_size: int = 1,
    log_base: float = 2
) -> BatchResult:
    """
    Compare each feature across groups with a one-way test.

    Parameters:
    -----------
    wide : pd.DataFrame
        Samples x features
    groups : str or pd.Series
        Column of `wide` holding the group label, or labels aligned on its index
    features : list, optional
        Features to test; defaults to every numeric column except the group column
    test : str
        'kruskal' (Kruskal-Wallis) or 'anova' (one-way ANOVA)
    raw : bool
        Apply log(x + 1) before testing
    min_group_size : int
        Groups with fewer non-null values are left out of the test for that feature

    Returns:
    --------
    BatchResult
        One row per tested feature sorted by descending statistic, p-values
        BH-adjusted within this batch; per-feature failures recorded separately
    """
    if test not in GROUP_TESTS:
        raise ValueError(f"Unsupported test type '{test}'. Choose from {sorted(GROUP_TESTS)}")
    test_func = GROUP_TESTS[test]

    if isinstance(groups, str):
        group_col = groups
        labels = wide[groups]
    else:
        group_col = None
        labels = pd.Series(groups).reindex(wide.index)

    if features is None:
        features = [
            c for c in wide.select_dtypes(include='number').columns if c != group_col
        ]

    group_names = sorted(labels.dropna().unique())
    logger.info(f"Comparing {len(features)} features across {len(group_names)} groups with {test}")

    rows, failures = [], []
    for feature in features:
        values = pd.to_numeric(wide[feature])
        if raw:
            values = log_transform(values, log_base)

        samples = []
        for group in group_names:
            group_values = values[labels == group].dropna()
            if group_values.empty:
                error = AllMissingFeature(f"Feature '{feature}' has no values in group {group!r}")
                logger.warning(str(error))
                failures.append(_failure(feature, group, error))
                continue
            if len(group_values) < min_group_size:
                logger.info(f"Skipping group {group!r} for '{feature}' (n={len(group_values)} < {min_group_size})")
                continue
            samples.append(group_values.to_numpy())

        if len(samples) < 2:
            error = InsufficientGroups(f"Feature '{feature}' has {len(samples)} usable groups, 2 required")
            logger.warning(str(error))
            failures.append(_failure(feature, None, error))
            continue

        try:
            statistic, p_value = test_func(*samples)
        except ValueError as ve:
            error = DegenerateTest(f"{test} failed for '{feature}': {ve}")
            logger.warning(str(error))
            failures.append(_failure(feature, None, error))
            continue
        if np.isnan(statistic) or np.isnan(p_value):
            error = DegenerateTest(f"{test} returned NaN for '{feature}'")
            logger.warning(str(error))
            failures.append(_failure(feature, None, error))
            continue

        rows.append({
            'feature': feature,
            'statistic': float(statistic),
            'p_value': float(p_value),
            'n_groups': len(samples),
        })

    batch = _finish_batch(rows, failures, 'n_groups')
    logger.info(f"Tested {len(batch.results)} features, {len(batch.failures)} failures recorded")
    return batch


def correlate_features(
    wide: pd.DataFrame,
    target,
    features: list[str] = None,
    method: str = 'spearman',
    raw: bool = False,
    min_samples: int = 3,
    log_base: float = 2
) -> BatchResult:
    """
    Correlate each feature with a numeric target (e.g. leukocyte fraction)
    over samples where both are present. The log transform, when requested,
    applies to the features only.
    """
    if method not in CORRELATION_TESTS:
        raise ValueError(f"Unsupported correlation method '{method}'. Choose from {sorted(CORRELATION_TESTS)}")
    test_func = CORRELATION_TESTS[method]

    if isinstance(target, str):
        target_col = target
        target_values = pd.to_numeric(wide[target])
    else:
        target_col = None
        target_values = pd.to_numeric(pd.Series(target).reindex(wide.index))

    if features is None:
        features = [
            c for c in wide.select_dtypes(include='number').columns if c != target_col
        ]
    logger.info(f"Correlating {len(features)} features with target using {method}")

    rows, failures = [], []
    for feature in features:
        values = pd.to_numeric(wide[feature])
        if raw:
            values = log_transform(values, log_base)
        if values.notna().sum() == 0:
            error = AllMissingFeature(f"Feature '{feature}' has no non-null values")
            logger.warning(str(error))
            failures.append(_failure(feature, None, error))
            continue
        paired = pd.concat([values, target_values], axis=1, keys=['x', 'y']).dropna()
        if len(paired) < min_samples:
            error = InsufficientSamples(
                f"Feature '{feature}' has {len(paired)} paired observations, {min_samples} required"
            )
            logger.warning(str(error))
            failures.append(_failure(feature, None, error))
            continue
        if paired['x'].nunique() < 2 or paired['y'].nunique() < 2:
            error = DegenerateTest(f"Constant input for '{feature}'; correlation undefined")
            logger.warning(str(error))
            failures.append(_failure(feature, None, error))
            continue

        statistic, p_value = test_func(paired['x'], paired['y'])
        rows.append({
            'feature': feature,
            'statistic': float(statistic),
            'p_value': float(p_value),
            'n_samples': len(paired),
        })

    batch = _finish_batch(rows, failures, 'n_samples')
    logger.info(f"Correlated {len(batch.results)} features, {len(batch.failures)} failures recorded")
    return batch


def annotate_results(
    results: pd.DataFrame,
    annotation: pd.DataFrame,
    symbol_col: str = 'Gene'
) -> pd.DataFrame:
    """Left-join gene annotation columns onto a results table by feature symbol."""
    if symbol_col not in annotation.columns:
        raise KeyError(f"Annotation table has no '{symbol_col}' column")
    annotation = annotation.drop_duplicates(subset=symbol_col)
    annotated = results.merge(
        annotation, left_on='feature', right_on=symbol_col, how='left'
    )
    if symbol_col != 'feature':
        annotated = annotated.drop(columns=[symbol_col])
    n_missing = (~annotated['feature'].isin(annotation[symbol_col])).sum()
    if n_missing:
        logger.warning(f"{n_missing} features have no annotation entry")
    return annotated
