import logging

import pandas as pd
from sklearn.decomposition import PCA
from sklearn.preprocessing import StandardScaler

logger = logging.getLogger(__name__)


def run_pca(wide: pd.DataFrame, n_components: int = 2, scale: bool = True) -> tuple:
    """
    Principal components of a complete samples x features table.

    Returns:
    --------
    (pd.DataFrame, pd.Series)
        Sample scores (columns PC1..PCn) and the explained variance ratio per component
    """
    if wide.isna().any().any():
        raise ValueError("PCA needs a complete table; build it with to_wide(..., strict=True)")
    max_components = min(wide.shape)
    if n_components > max_components:
        raise ValueError(f"n_components={n_components} exceeds min(samples, features)={max_components}")

    values = wide.to_numpy(dtype=float)
    if scale:
        values = StandardScaler().fit_transform(values)

    pca = PCA(n_components=n_components)
    components = pca.fit_transform(values)
    names = [f'PC{i + 1}' for i in range(n_components)]

    scores = pd.DataFrame(components, index=wide.index, columns=names)
    explained = pd.Series(pca.explained_variance_ratio_, index=names, name='explained_variance_ratio')
    logger.info(f"PCA explained variance: {', '.join(f'{n}={v:.1%}' for n, v in explained.items())}")
    return scores, explained
