import argparse
import logging
import os
import pandas as pd

from .barcodes import DEFAULT_SCHEME, BarcodeScheme, parse_barcode

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'


def setup_logging(log_file: str = None, level: int = logging.INFO) -> None:
    """Configure root logging; optionally also write to `log_file`."""
    logging.basicConfig(level=level, format=LOG_FORMAT)
    if log_file:
        os.makedirs(os.path.dirname(os.path.abspath(log_file)), exist_ok=True)
        handler = logging.FileHandler(log_file)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logging.getLogger().addHandler(handler)


def load_csv(path: str) -> pd.DataFrame:
    """Read a delimited file, handling UTF-8 BOM if present. '.csv' is comma-separated, anything else tab-separated."""
    sep = ',' if path.lower().endswith('.csv') else '\t'
    return pd.read_csv(path, sep=sep, encoding='utf-8-sig')


def load_table_with_logging(path: str, required_columns: list[str] = None) -> pd.DataFrame:
    """
    Load a delimited table and log its shape. Optionally check for required columns.

    Args:
        path (str): Path to the CSV/TSV file.
        required_columns (list, optional): Column names that must be present.

    Returns:
        pd.DataFrame: Loaded DataFrame.

    Raises:
        ValueError: If required columns are missing.
    """
    try:
        df = load_csv(path)
    except Exception as e:
        logger.error(f"Error loading {path}: {e}")
        raise
    logger.info(f"Loaded {path} with shape {df.shape}")
    if required_columns:
        missing_cols = [col for col in required_columns if col not in df.columns]
        if missing_cols:
            logger.error(f"Missing required columns in {path}: {missing_cols}")
            raise ValueError(f"Missing required columns: {missing_cols}")
    return df


def save_results(df: pd.DataFrame, filename: str, output_dir: str, index: bool = False) -> str:
    """Save a DataFrame as CSV in `output_dir` and return the written path."""
    os.makedirs(output_dir, exist_ok=True)
    output_file = os.path.join(output_dir, filename)
    df.to_csv(output_file, index=index)
    logger.info(f"Saved results to {output_file}")
    return output_file


def create_barcode_map(
    path: str,
    barcode_col: str = None,
    scheme: BarcodeScheme = DEFAULT_SCHEME
) -> dict[str, tuple[str, str]]:
    """
    Build a mapping from each barcode in a table to its (vial id, portion id).
    If barcode_col isn't provided, auto-detect a column containing 'barcode' or 'sample'.
    """
    df = load_csv(path)
    cols = list(df.columns)
    if barcode_col is None:
        barcode_col = next(
            (c for c in cols if 'barcode' in c.lower() or 'sample' in c.lower()),
            cols[0]
        )
    mapping: dict[str, tuple[str, str]] = {}
    for barcode in df[barcode_col]:
        parsed = parse_barcode(barcode, scheme)
        mapping[parsed.normalized] = (parsed.vial_id, parsed.portion_id)
    return mapping


def main():
    """Command-line interface for checking how a table's barcodes resolve."""
    parser = argparse.ArgumentParser(description='Print barcode -> vial id / portion id for a table')
    parser.add_argument('table', help='Path to a CSV/TSV table with a barcode column')
    parser.add_argument('--barcode-col', help='Override barcode column name')
    args = parser.parse_args()
    mapping = create_barcode_map(args.table, barcode_col=args.barcode_col)
    for barcode, (vial, portion) in mapping.items():
        print(f"{barcode}\t{vial}\t{portion}")


if __name__ == '__main__':
    main()
