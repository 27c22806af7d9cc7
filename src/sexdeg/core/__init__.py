"""
Core data structures shared by every analysis step.

1. BioMatrix: gene-by-sample expression matrix with sample annotations and
   per-value quality flags
2. QualityFlag: bitwise flags recording where values came from
3. Errors: the input-structure exceptions surfaced to the user

Examples:
    >>> from sexdeg.core import BioMatrix, QualityFlag
    >>>
    >>> # Count cells that could not be parsed as numbers
    >>> n_coerced = np.sum(matrix.quality_flags & QualityFlag.MISSING_ORIGINAL != 0)
"""

from sexdeg.core.biomatrix import BioMatrix
from sexdeg.core.quality import QualityFlag
from sexdeg.core.errors import (
    AnalysisInputError,
    MissingColumnError,
    NoOverlapError,
    InsufficientDataError,
    InsufficientSamplesError,
)

__all__ = [
    'BioMatrix',
    'QualityFlag',
    'AnalysisInputError',
    'MissingColumnError',
    'NoOverlapError',
    'InsufficientDataError',
    'InsufficientSamplesError',
]
