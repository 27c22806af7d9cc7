"""
Quality flag system for tracking where expression values came from.

Every cell of a BioMatrix carries a flag. Uploaded expression files are
messy: some cells hold text ("NA", "n/d", "<LOD") that cannot be read as a
number. Those cells become NaN during loading and are flagged so the app can
report how much of the matrix was unreadable and so later steps can tell a
measured value from a transformed one.

Engineering Design:
    IntFlag enables efficient bitwise operations:
    - Multiple flags per value: MISSING_ORIGINAL | LOG_TRANSFORMED
    - Fast bitwise checks: if flags & QualityFlag.MISSING_ORIGINAL
    - Memory efficient: single int per value

Examples:
    >>> from sexdeg.core.quality import QualityFlag
    >>>
    >>> # A value read from a linear-scale upload and log-transformed
    >>> flag = QualityFlag.LOG_TRANSFORMED
    >>>
    >>> import numpy as np
    >>> flags = np.array([0, 4, 6, 0], dtype=int)
    >>> n_missing = np.sum(flags & QualityFlag.MISSING_ORIGINAL != 0)
"""

from __future__ import annotations

from enum import IntFlag

__all__ = ['QualityFlag']


class QualityFlag(IntFlag):
    """
    Bitwise flags for per-value quality tracking in expression matrices.

    Attributes:
        ORIGINAL: Value parsed as a number from the uploaded file (0)
        MISSING_ORIGINAL: Cell was empty or non-numeric in the upload (4)
        LOG_TRANSFORMED: Value was log2(x + 1) transformed on load (8)
    """

    ORIGINAL = 0
    """Parsed as a number, not transformed."""

    MISSING_ORIGINAL = 4
    """Empty or non-numeric in the upload; coerced to NaN."""

    LOG_TRANSFORMED = 8
    """Transformed with log2(x + 1) during loading."""

    @classmethod
    def describe(cls, flag: int) -> str:
        """
        Human-readable description of a (possibly combined) flag value.

        Examples:
            >>> QualityFlag.describe(QualityFlag.MISSING_ORIGINAL | QualityFlag.LOG_TRANSFORMED)
            'MISSING_ORIGINAL | LOG_TRANSFORMED'
            >>> QualityFlag.describe(0)
            'ORIGINAL'
        """
        if flag == 0:
            return 'ORIGINAL'
        names = [member.name for member in cls if member.value and flag & member.value]
        return ' | '.join(names)
