import logging
import os

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import seaborn as sns

logger = logging.getLogger(__name__)


def plot_group_boxplot(data, group_col, value_col, output_file, title=None, p_value=None):
    """
    Boxplot of `value_col` by `group_col`, optionally annotated with a p-value.

    Args:
        data (pd.DataFrame): Data to plot.
        group_col (str): Column name for the x-axis groups.
        value_col (str): Column name for the y-axis values.
        output_file (str): Path to save the plot.
        title (str, optional): Plot title; defaults to the value column.
        p_value (float, optional): Adjusted p-value to print on the plot.
    """
    os.makedirs(os.path.dirname(os.path.abspath(output_file)), exist_ok=True)
    order = sorted(data[group_col].dropna().unique())
    plt.figure(figsize=(10, 6))
    ax = sns.boxplot(data=data, x=group_col, y=value_col, order=order)
    plt.title(title or value_col)
    plt.xlabel(group_col)
    plt.ylabel(value_col)
    if p_value is not None:
        plt.text(0.5, 0.95, f'adj. p = {p_value:.2e}', transform=ax.transAxes,
                 horizontalalignment='center', verticalalignment='top',
                 bbox=dict(facecolor='white', alpha=0.8, edgecolor='none'))
    plt.tight_layout()
    plt.savefig(output_file, dpi=300)
    plt.close()
    logger.info(f"Saved boxplot to {output_file}")
    return output_file


def plot_correlation_heatmap(wide, output_file, method='spearman', title=None):
    """Heatmap of pairwise feature correlations."""
    corr = wide.corr(method=method)
    if corr.empty or corr.isnull().all().all():
        logger.warning("Correlation matrix is empty or all NaN. Skipping plot.")
        return None

    os.makedirs(os.path.dirname(os.path.abspath(output_file)), exist_ok=True)
    fig_size = max(8, len(corr) * 0.6)
    plt.figure(figsize=(fig_size, fig_size * 0.8))
    sns.heatmap(corr, cmap='RdBu_r', center=0, vmin=-1, vmax=1,
                annot=len(corr) <= 20, fmt='.1f', annot_kws={"size": 8},
                linewidths=.5, cbar_kws={'shrink': .8, 'label': f'{method.capitalize()} correlation'})
    plt.xticks(rotation=45, ha='right', fontsize=8)
    plt.yticks(rotation=0, fontsize=8)
    plt.title(title or f'Feature correlations ({method})')
    plt.savefig(output_file, bbox_inches='tight', dpi=300)
    plt.close()
    logger.info(f"Saved correlation matrix to {output_file}")
    return output_file
