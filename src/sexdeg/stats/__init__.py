"""
Statistics for the sex-stratified case/control comparison.

Exports:
- Sample matching (AnnotatedExpression, match_samples)
- Limma-style differential expression with empirical Bayes moderation
- Multiple testing correction (FDR)
- Feature matrices for the ML workflows
"""

from .matching import AnnotatedExpression, match_samples
from .empirical_bayes import fit_f_dist, squeeze_var, trigamma_inverse
from .differential import (
    DEGResult,
    fdr_correction,
    fit_two_group_model,
    run_sex_differential,
    summarize_degs,
)
from .features import FeatureMatrix, build_feature_matrix, make_unique_names

__all__ = [
    "AnnotatedExpression",
    "match_samples",
    "fit_f_dist",
    "squeeze_var",
    "trigamma_inverse",
    "DEGResult",
    "fdr_correction",
    "fit_two_group_model",
    "run_sex_differential",
    "summarize_degs",
    "FeatureMatrix",
    "build_feature_matrix",
    "make_unique_names",
]
