"""
Immunomodulator analysis pipeline
=================================
Reconciles an expression table with immune subtype and/or numeric
per-sample measurements (leukocyte fraction, clonality, ...):
- Removing QC-excluded samples from every table
- Matching samples on vial id and portion id
- Averaging replicates into wide tables keyed by portion id
- Testing each feature across subtypes and/or correlating with the target
"""

import argparse
import logging
import os

import pandas as pd

from pancan_immune.config import CONFIG, DEFAULT_SCHEME
from pancan_immune.data_processing import (
    add_barcode_keys,
    build_exclusion_set,
    filter_excluded,
    load_table_with_logging,
    match_samples,
    save_results,
    setup_logging,
    to_wide,
)
from pancan_immune.immune_analysis import (
    annotate_results,
    compare_groups,
    correlate_features,
    run_pca,
    summarize_groups,
)

logger = logging.getLogger(__name__)

GROUP_LABEL = 'group_label'
TARGET_VALUE = 'target_value'
PCA_COMPONENTS = 2


def parse_args(argv=None):
    """Parse command line arguments."""
    long_cols = CONFIG['columns']['long']
    stats_cfg = CONFIG['stats']
    parser = argparse.ArgumentParser(description='Run immunomodulator reconciliation and statistics')

    # Inputs
    parser.add_argument('--expression', required=True,
                        help='Long expression table (sample, feature, value)')
    parser.add_argument('--groups', default=None,
                        help='Table of group labels per sample, e.g. immune subtypes')
    parser.add_argument('--target', default=None,
                        help='Table of a numeric measurement per sample, e.g. leukocyte fraction')
    parser.add_argument('--qc', default=None,
                        help='QC annotation table with exclusion flags')
    parser.add_argument('--annotation', default=None,
                        help='Gene annotation table keyed by symbol')
    parser.add_argument('--output-dir', default=CONFIG['output_dir'],
                        help='Directory for result tables and plots')

    # Column names
    parser.add_argument('--sample-col', default=long_cols['sample'])
    parser.add_argument('--feature-col', default=long_cols['feature'])
    parser.add_argument('--value-col', default=long_cols['value'])
    parser.add_argument('--group-sample-col', default=CONFIG['columns']['groups']['sample'])
    parser.add_argument('--group-col', default=CONFIG['columns']['groups']['group'])
    parser.add_argument('--target-sample-col', default=CONFIG['columns']['target']['sample'])
    parser.add_argument('--target-col', default=CONFIG['columns']['target']['value'])

    # Analysis options
    parser.add_argument('--strict', action='store_true',
                        help='Drop features with any missing sample')
    parser.add_argument('--raw', action='store_true',
                        help='Expression is raw (non-log); apply log(x + 1) before statistics')
    parser.add_argument('--test', choices=['kruskal', 'anova'], default=stats_cfg['test'],
                        help='Test used to compare features across groups')
    parser.add_argument('--method', choices=['spearman', 'pearson'], default=stats_cfg['correlation'],
                        help='Correlation used against the target')
    parser.add_argument('--pca', action='store_true',
                        help='Run PCA on the complete expression table')
    parser.add_argument('--plots', action='store_true',
                        help='Save boxplots of the top group comparisons')
    parser.add_argument('--top-n', type=int, default=5,
                        help='Number of top features to plot')
    parser.add_argument('--log-file', default=None, help='Also write logs to this file')
    return parser.parse_args(argv)


def _matched_wide(expression, args, match) -> pd.DataFrame:
    """
    Expression of the matched portions only, one row per portion id. Each
    expression row is counted once however many rows of the other table it
    paired with; replicates within a portion are averaged by `to_wide`.
    """
    keyed = add_barcode_keys(expression, args.sample_col, DEFAULT_SCHEME)
    matched = keyed[keyed['portion_id'].isin(match.pairs['portion_id'])]
    n_portions = matched.groupby('vial_id')['portion_id'].nunique()
    multi = n_portions[n_portions > 1]
    if len(multi) > 0:
        logger.info(f"{len(multi)} vials contribute more than one matched portion; each portion is kept as its own sample")
    return to_wide(matched, 'portion_id', args.feature_col, args.value_col, strict=args.strict)


def _group_labels(pairs: pd.DataFrame) -> pd.Series:
    """One group label per portion id; portions with conflicting labels are left out."""
    labelled = pairs.dropna(subset=[GROUP_LABEL])
    n_labels = labelled.groupby('portion_id')[GROUP_LABEL].nunique()
    conflicted = n_labels[n_labels > 1].index
    if len(conflicted) > 0:
        logger.warning(f"Dropping {len(conflicted)} portions with conflicting group labels: {list(conflicted[:5])}")
    labels = labelled.drop_duplicates('portion_id').set_index('portion_id')[GROUP_LABEL]
    return labels.drop(index=conflicted)


def run_group_comparison(expression, args, exclusion, outputs):
    groups = load_table_with_logging(args.groups, [args.group_sample_col, args.group_col])
    if exclusion:
        groups = filter_excluded(groups, exclusion, args.group_sample_col, DEFAULT_SCHEME)
    groups = groups[[args.group_sample_col, args.group_col]].rename(columns={args.group_col: GROUP_LABEL})

    match = match_samples(
        expression, groups,
        barcode_col_a=args.sample_col, barcode_col_b=args.group_sample_col,
        scheme=DEFAULT_SCHEME,
    )
    if len(match.portion_mismatches) > 0:
        outputs['portion_mismatches'] = save_results(
            match.portion_mismatches, 'group_portion_mismatches.csv', args.output_dir)
    if match.pairs.empty:
        logger.warning("No expression samples matched the group table; skipping comparison")
        return

    wide = _matched_wide(expression, args, match)
    outputs['group_expression'] = save_results(wide, 'group_expression_wide.csv', args.output_dir, index=True)
    labels = _group_labels(match.pairs)
    batch = compare_groups(
        wide, labels, test=args.test, raw=args.raw,
        min_group_size=CONFIG['stats']['min_group_size'],
        log_base=CONFIG['stats']['log_base'],
    )
    results = batch.results
    if args.annotation:
        symbol_col = CONFIG['columns']['annotation']['symbol']
        annotation = load_table_with_logging(args.annotation, [symbol_col])
        results = annotate_results(results, annotation, symbol_col)

    outputs['group_comparison'] = save_results(results, f'group_comparison_{args.test}.csv', args.output_dir)
    outputs['group_failures'] = save_results(batch.failures, 'group_comparison_failures.csv', args.output_dir)

    n_sig = len(batch.significant(CONFIG['stats']['alpha']))
    logger.info(f"{n_sig} of {len(results)} features differ across groups (BH-adjusted p < {CONFIG['stats']['alpha']})")

    labelled = wide.join(labels, how='inner')
    for feature in results['feature'].head(args.top_n):
        summary = summarize_groups(
            labelled, GROUP_LABEL, feature, raw=args.raw, log_base=CONFIG['stats']['log_base'])
        outputs[f'group_summary_{feature}'] = save_results(
            summary.results.rename(columns={'group': args.group_col}),
            f'group_summary_{feature}.csv', args.output_dir)

    if args.plots and not results.empty:
        from pancan_immune.immune_analysis.plots import plot_group_boxplot
        plot_data = wide.join(labels.rename(args.group_col), how='inner')
        plot_dir = os.path.join(args.output_dir, 'plots')
        for _, row in results.head(args.top_n).iterrows():
            feature = row['feature']
            plot_group_boxplot(
                plot_data, args.group_col, feature,
                os.path.join(plot_dir, f"{feature}_by_{args.group_col}.png"),
                p_value=row['p_adjusted'],
            )
        outputs['plots'] = plot_dir


def run_target_correlation(expression, args, exclusion, outputs):
    target = load_table_with_logging(args.target, [args.target_sample_col, args.target_col])
    if exclusion:
        target = filter_excluded(target, exclusion, args.target_sample_col, DEFAULT_SCHEME)
    target = target[[args.target_sample_col, args.target_col]].rename(columns={args.target_col: TARGET_VALUE})

    match = match_samples(
        expression, target,
        barcode_col_a=args.sample_col, barcode_col_b=args.target_sample_col,
        scheme=DEFAULT_SCHEME,
    )
    if len(match.portion_mismatches) > 0:
        outputs['target_portion_mismatches'] = save_results(
            match.portion_mismatches, 'target_portion_mismatches.csv', args.output_dir)
    if match.pairs.empty:
        logger.warning("No expression samples matched the target table; skipping correlation")
        return

    wide = _matched_wide(expression, args, match)
    outputs['target_expression'] = save_results(wide, 'target_expression_wide.csv', args.output_dir, index=True)
    # one value per target barcode, averaged within each portion
    target_values = (
        match.pairs.drop_duplicates(['portion_id', match.barcode_cols[1]])
        .groupby('portion_id')[TARGET_VALUE]
        .mean()
    )
    batch = correlate_features(
        wide, target_values, method=args.method, raw=args.raw,
        min_samples=CONFIG['stats']['min_samples'],
        log_base=CONFIG['stats']['log_base'],
    )
    outputs['target_correlation'] = save_results(
        batch.results, f'{args.target_col}_correlation_{args.method}.csv', args.output_dir)
    outputs['target_failures'] = save_results(
        batch.failures, f'{args.target_col}_correlation_failures.csv', args.output_dir)


def run_pipeline(args) -> dict:
    """Run every requested analysis and return a mapping of output name to file path."""
    outputs = {}
    os.makedirs(args.output_dir, exist_ok=True)

    expression = load_table_with_logging(args.expression, [args.sample_col, args.feature_col, args.value_col])

    exclusion = frozenset()
    if args.qc:
        qc_cols = CONFIG['columns']['qc']
        qc = load_table_with_logging(args.qc, [qc_cols['barcode'], *qc_cols['flags']])
        exclusion = build_exclusion_set(qc, qc_cols['barcode'], qc_cols['flags'], DEFAULT_SCHEME)
        expression = filter_excluded(expression, exclusion, args.sample_col, DEFAULT_SCHEME)

    wide = to_wide(expression, args.sample_col, args.feature_col, args.value_col, strict=args.strict)
    outputs['expression_wide'] = save_results(wide, 'expression_wide.csv', args.output_dir, index=True)

    if args.pca:
        complete = wide if args.strict else wide.dropna(axis=1)
        if min(complete.shape) < PCA_COMPONENTS:
            logger.warning(
                f"Skipping PCA: complete expression table is {complete.shape[0]} samples x "
                f"{complete.shape[1]} features, {PCA_COMPONENTS} of each required"
            )
        else:
            scores, explained = run_pca(complete, n_components=PCA_COMPONENTS)
            outputs['pca_scores'] = save_results(scores, 'pca_scores.csv', args.output_dir, index=True)
            outputs['pca_variance'] = save_results(
                explained.rename_axis('component').reset_index(), 'pca_explained_variance.csv', args.output_dir)

    if args.plots:
        from pancan_immune.immune_analysis.plots import plot_correlation_heatmap
        heatmap = plot_correlation_heatmap(
            wide, os.path.join(args.output_dir, f'expression_correlation_{args.method}.png'), method=args.method)
        if heatmap:
            outputs['expression_correlation'] = heatmap

    if args.groups:
        run_group_comparison(expression, args, exclusion, outputs)
    if args.target:
        run_target_correlation(expression, args, exclusion, outputs)

    return outputs


def main(argv=None):
    args = parse_args(argv)
    setup_logging(args.log_file)
    outputs = run_pipeline(args)
    for name, path in outputs.items():
        print(f"{name}\t{path}")


if __name__ == "__main__":
    main()
