"""
Configuration for column names, QC flags and statistics defaults.
"""

from pancan_immune.data_processing.barcodes import DEFAULT_SCHEME


# Configuration dictionary for column names and analysis defaults
CONFIG = {
    'output_dir': 'output',
    'columns': {
        'long': {'sample': 'sample_id', 'feature': 'feature_name', 'value': 'value'},
        'groups': {'sample': 'sample_id', 'group': 'Subtype_Immune_Model_Based'},
        'target': {'sample': 'sample_id', 'value': 'leukocyte_fraction'},
        'qc': {
            'barcode': 'aliquot_barcode',
            'flags': ['Do_not_use', 'AWG_excluded_because_of_pathology'],
        },
        'annotation': {'symbol': 'Gene'},
    },
    'stats': {
        'alpha': 0.05,
        'log_base': 2,
        'test': 'kruskal',
        'correlation': 'spearman',
        'min_group_size': 1,
        'min_samples': 3,
    },
}
