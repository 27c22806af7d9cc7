"""
I/O for uploaded tables and analysis outputs.

Key Functions:
    - load_expression: Expression file → log2-scale BioMatrix
    - load_phenotypes: Phenotype file → sample-indexed table with canonical
      gender / status columns
    - write_deg_table, write_summary, write_selection, write_run_summary:
      atomic CSV / JSON exports

Examples:
    >>> from sexdeg.io import load_expression, load_phenotypes
    >>> matrix = load_expression("expression.csv")
    >>> pheno = load_phenotypes("phenotype.csv")
"""

from sexdeg.io.loaders import load_expression, clean_sample_id, needs_log_transform
from sexdeg.io.phenotype import (
    CASE,
    CONTROL,
    SEXES,
    ExplicitColumnInferencer,
    PatternColumnInferencer,
    PhenotypeColumnInferencer,
    canonicalize_sex,
    canonicalize_status,
    load_phenotypes,
)

__all__ = [
    'load_expression',
    'clean_sample_id',
    'needs_log_transform',
    'load_phenotypes',
    'canonicalize_status',
    'canonicalize_sex',
    'PhenotypeColumnInferencer',
    'PatternColumnInferencer',
    'ExplicitColumnInferencer',
    'CASE',
    'CONTROL',
    'SEXES',
]
