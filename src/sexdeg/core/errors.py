"""
Input-structure errors.

These are the failures a user can fix by uploading different files or
picking a different stratum: a required column is missing, the two files
share no samples, or a stratum is too small for the requested analysis.
They abort only the computation that raised them.

Numeric coercion problems are not errors (cells become NaN), and failures
inside the statistical libraries are not wrapped.
"""

__all__ = [
    'AnalysisInputError',
    'MissingColumnError',
    'NoOverlapError',
    'InsufficientDataError',
    'InsufficientSamplesError',
]


class AnalysisInputError(ValueError):
    """Base class for errors caused by the structure of the uploaded inputs."""
    pass


class MissingColumnError(AnalysisInputError):
    """Raised when a required phenotype column cannot be found."""
    pass


class NoOverlapError(AnalysisInputError):
    """Raised when the expression and phenotype files share no sample identifiers."""
    pass


class InsufficientDataError(AnalysisInputError):
    """Raised when a stratum lacks the samples or groups an analysis needs."""
    pass


class InsufficientSamplesError(InsufficientDataError):
    """Raised when too few samples remain in a stratum for model fitting."""
    pass
