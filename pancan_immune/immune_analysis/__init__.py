"""
Immune analysis package initialization
"""

from .summary import (
    BatchResult,
    adjust_pvalues,
    annotate_results,
    compare_groups,
    correlate_features,
    log_transform,
    summarize_groups,
)
from .pca import run_pca
