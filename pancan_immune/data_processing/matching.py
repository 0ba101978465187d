"""
Sample-set matching across assay tables.

Rows of two tables are paired when their vial ids match AND their portion ids
are identical. A vial-id match alone is not enough: one vial may contribute
several portions/plates to different assays, and pairing those would create
spurious samples. Vial-id matches with differing portions are reported, not
dropped silently.
"""

import logging
from dataclasses import dataclass, field

import pandas as pd

from pancan_immune.errors import UnmatchedJoin
from .barcodes import DEFAULT_SCHEME, BarcodeScheme, add_barcode_keys

logger = logging.getLogger(__name__)

KEY_COLS = ['vial_id', 'portion_id']


@dataclass
class MatchResult:
    pairs: pd.DataFrame
    portion_mismatches: pd.DataFrame
    unmatched_a: set = field(default_factory=set)
    unmatched_b: set = field(default_factory=set)
    barcode_cols: tuple = ('barcode_a', 'barcode_b')

    def pair_keys(self) -> set:
        """(barcode from table A, barcode from table B) for every matched pair."""
        col_a, col_b = self.barcode_cols
        return set(zip(self.pairs[col_a], self.pairs[col_b]))

    def summary(self) -> dict:
        return {
            'pairs': len(self.pairs),
            'portion_mismatches': len(self.portion_mismatches),
            'unmatched_a': len(self.unmatched_a),
            'unmatched_b': len(self.unmatched_b),
        }

    def raise_for_unmatched(self) -> None:
        """Raise UnmatchedJoin if either side had vial ids without a counterpart."""
        if self.unmatched_a:
            raise UnmatchedJoin('A', self.unmatched_a)
        if self.unmatched_b:
            raise UnmatchedJoin('B', self.unmatched_b)


def _joined_name(col: str, other_cols, suffix: str) -> str:
    # Name pandas gives `col` after a merge on 'vial_id' with these suffixes
    if col != 'vial_id' and col in other_cols:
        return f"{col}{suffix}"
    return col


def match_samples(
    table_a: pd.DataFrame,
    table_b: pd.DataFrame,
    barcode_col_a: str = 'sample_id',
    barcode_col_b: str = 'sample_id',
    scheme: BarcodeScheme = DEFAULT_SCHEME,
    suffixes: tuple = ('_a', '_b')
) -> MatchResult:
    """
    Pair rows of `table_a` and `table_b` on vial id, keeping only pairs whose
    portion ids are equal. All candidate pairs are returned; duplicate plates
    are left for the caller to aggregate.

    Returns:
    --------
    MatchResult
        pairs, portion mismatches (for audit) and unmatched vial ids per side
    """
    keyed_a = add_barcode_keys(table_a, barcode_col_a, scheme)
    keyed_b = add_barcode_keys(table_b, barcode_col_b, scheme)

    joined = keyed_a.merge(keyed_b, on='vial_id', how='inner', suffixes=suffixes)
    bc_a = _joined_name(barcode_col_a, keyed_b.columns, suffixes[0])
    bc_b = _joined_name(barcode_col_b, keyed_a.columns, suffixes[1])
    portion_a = f"portion_id{suffixes[0]}"
    portion_b = f"portion_id{suffixes[1]}"

    same_portion = joined[portion_a] == joined[portion_b]

    pairs = (
        joined.loc[same_portion]
        .drop(columns=[portion_b])
        .rename(columns={portion_a: 'portion_id'})
        .reset_index(drop=True)
    )
    pairs = pairs[KEY_COLS + [c for c in pairs.columns if c not in KEY_COLS]]

    mismatches = (
        joined.loc[~same_portion, ['vial_id', bc_a, portion_a, bc_b, portion_b]]
        .rename(columns={
            bc_a: 'barcode_a', portion_a: 'portion_id_a',
            bc_b: 'barcode_b', portion_b: 'portion_id_b',
        })
        .reset_index(drop=True)
    )

    vials_a = set(keyed_a['vial_id'])
    vials_b = set(keyed_b['vial_id'])
    result = MatchResult(
        pairs=pairs,
        portion_mismatches=mismatches,
        unmatched_a=vials_a - vials_b,
        unmatched_b=vials_b - vials_a,
        barcode_cols=(bc_a, bc_b),
    )

    logger.info(f"Matched {len(pairs)} sample pairs on vial id and portion id")
    if len(mismatches) > 0:
        logger.warning(
            f"{len(mismatches)} vial-id matches rejected because portion ids differ, "
            f"e.g. {mismatches[['barcode_a', 'barcode_b']].head(3).values.tolist()}"
        )
    if result.unmatched_a or result.unmatched_b:
        logger.warning(
            f"Unmatched vial ids: {len(result.unmatched_a)} only in table A, "
            f"{len(result.unmatched_b)} only in table B"
        )
    return result


def build_matched_cohort(
    tables: dict,
    barcode_cols,
    scheme: BarcodeScheme = DEFAULT_SCHEME
) -> tuple:
    """
    Fold several named assay tables into one matched cohort.

    Each table's barcode column is renamed '<name>_barcode'; other colliding
    columns get a '_<name>' suffix. Tables are joined in the given order.

    Parameters:
    -----------
    tables : dict
        Mapping of table name to DataFrame (at least two)
    barcode_cols : str or dict
        Barcode column shared by all tables, or a mapping of table name to column

    Returns:
    --------
    (pd.DataFrame, dict)
        Cohort keyed by vial_id/portion_id, and the MatchResult of each join step
    """
    if len(tables) < 2:
        raise ValueError("A matched cohort needs at least two tables")
    if isinstance(barcode_cols, str):
        barcode_cols = {name: barcode_cols for name in tables}

    names = list(tables)
    first = names[0]
    cohort_barcode = f"{first}_barcode"
    cohort = tables[first].rename(columns={barcode_cols[first]: cohort_barcode})
    cohort = add_barcode_keys(cohort, cohort_barcode, scheme)

    reports = {}
    for name in names[1:]:
        table_barcode = f"{name}_barcode"
        table = tables[name].rename(columns={barcode_cols[name]: table_barcode})
        result = match_samples(
            cohort.drop(columns=KEY_COLS), table,
            barcode_col_a=cohort_barcode, barcode_col_b=table_barcode,
            scheme=scheme, suffixes=('', f'_{name}'),
        )
        reports[name] = result
        cohort = result.pairs
        logger.info(f"Cohort after joining '{name}': {len(cohort)} rows")

    return cohort, reports
