"""
Source code for pan-cancer immunomodulator analysis.

This package contains modules for reconciling sample barcodes across assay
tables, aggregating tidy data into analysis-ready tables, and computing
grouped statistics on immune subtypes, leukocyte fraction and related
measurements.
"""

__version__ = "1.0.0"
