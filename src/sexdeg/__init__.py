"""
sexdeg - Sex-stratified differential expression for case/control transcriptomics

Loads an expression matrix and a phenotype table, matches samples, runs
limma-style differential expression separately for female and male samples,
and feeds the resulting gene sets into Boruta, elastic-net and RFE feature
selection.
"""

__version__ = "0.1.0"

from sexdeg.core.biomatrix import BioMatrix
from sexdeg.core.quality import QualityFlag
from sexdeg.core.errors import (
    AnalysisInputError,
    MissingColumnError,
    NoOverlapError,
    InsufficientDataError,
    InsufficientSamplesError,
)
from sexdeg.session import AnalysisSession

__all__ = [
    "BioMatrix",
    "QualityFlag",
    "AnalysisInputError",
    "MissingColumnError",
    "NoOverlapError",
    "InsufficientDataError",
    "InsufficientSamplesError",
    "AnalysisSession",
]
