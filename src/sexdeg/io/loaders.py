"""
Expression matrix loader.

Parses an uploaded delimited file into a gene-by-sample BioMatrix on the
log2 scale.

Expected layout:
    ```
    gene,GSM1001,GSM1002,GSM1003
    IL6,812.4,95.1,1203.9
    TNF,44.0,n/a,61.7
    IL6,790.2,101.3,1188.0
    ```
    - First column: gene symbol (may repeat across probes)
    - Header: sample identifiers
    - Cells: non-negative intensities; anything unreadable becomes NaN

Processing:
    1. Sample identifiers are cleaned (whitespace, quotes and separator
       characters removed) so they match the phenotype table's cleaned IDs
    2. Cells are coerced to numbers; failures become NaN and are flagged
       MISSING_ORIGINAL, never raised
    3. log2(x + 1), either forced or decided by the GEO2R quantile heuristic
    4. Genes whose log-scale variance is not above `min_variance` are dropped

Examples:
    >>> from sexdeg.io.loaders import load_expression
    >>> matrix = load_expression("GSE93272_expression.csv")
    >>> print(f"Loaded {matrix.n_features} genes × {matrix.n_samples} samples")
"""

from __future__ import annotations

import logging
import re
import warnings
from typing import Literal

import numpy as np
import pandas as pd

from sexdeg.core.biomatrix import BioMatrix
from sexdeg.core.errors import InsufficientDataError
from sexdeg.core.quality import QualityFlag
from sexdeg.io.formats import TableSource, read_table, source_name

__all__ = ['load_expression', 'clean_sample_id', 'needs_log_transform', 'DEFAULT_MIN_VARIANCE']

logger = logging.getLogger(__name__)

DEFAULT_MIN_VARIANCE = 0.01

LogTransformMode = Literal["auto", "always", "never"]

_SAMPLE_ID_STRIP = re.compile(r"[\s\"'.\-_/\\]+")


def clean_sample_id(raw: object) -> str:
    """
    Normalise a sample identifier for matching across files.

    Removes whitespace, quotes and the separator characters ``. - _ / \\``.
    Case is preserved.

    Examples:
        >>> clean_sample_id(" GSM-1001 ")
        'GSM1001'
        >>> clean_sample_id("patient_01.A")
        'patient01A'
    """
    if raw is None or (isinstance(raw, float) and np.isnan(raw)):
        return ''
    return _SAMPLE_ID_STRIP.sub('', str(raw))


def needs_log_transform(data: np.ndarray) -> bool:
    """
    Decide whether intensities still need a log2 transform.

    GEO2R heuristic: the data look linear-scale when the 99th percentile
    exceeds 100, or when the range exceeds 50 with a positive lower quartile.
    """
    finite = data[np.isfinite(data)]
    if finite.size == 0:
        return False

    q0, q25, q99, q100 = np.quantile(finite, [0.0, 0.25, 0.99, 1.0])
    return bool(q99 > 100 or (q100 - q0 > 50 and q25 > 0))


def load_expression(
    source: TableSource,
    min_variance: float = DEFAULT_MIN_VARIANCE,
    log_transform: LogTransformMode = "auto",
) -> BioMatrix:
    """
    Load an expression file into a log2-scale BioMatrix.

    Args:
        source: Path or uploaded file object
        min_variance: Genes with sample variance (log2 scale, ddof=1) not
            strictly above this value are dropped
        log_transform: "always", "never", or "auto" (GEO2R heuristic)

    Returns:
        BioMatrix with gene symbols as feature_ids, cleaned sample IDs and
        empty sample_metadata

    Raises:
        FileNotFoundError: If a path does not exist
        ValueError: If the file is empty, malformed or has no sample columns
        InsufficientDataError: If no gene passes the variance filter
    """
    if log_transform not in ("auto", "always", "never"):
        raise ValueError(f"log_transform must be 'auto', 'always' or 'never', got {log_transform!r}")

    name = source_name(source) or '<upload>'
    # Header read as a data row: read_csv would rename a repeated "GSM1" to
    # "GSM1.1", which cleans to a different, possibly real, sample ID
    table = read_table(source, header=None, dtype=str)

    if table.shape[1] < 2:
        raise ValueError(
            f"Expression file {name} needs a gene column followed by at least one sample column"
        )
    header = table.iloc[0].tolist()
    df = table.iloc[1:]

    genes = df.iloc[:, 0]
    keep_rows = genes.notna() & (genes.astype(str).str.strip() != '')
    if not keep_rows.all():
        logger.info(f"Dropping {int((~keep_rows).sum())} rows without a gene symbol")
    df = df.loc[keep_rows]
    if df.empty:
        raise ValueError(f"Expression file {name} contains no genes")
    feature_ids = pd.Index(df.iloc[:, 0].str.strip(), name='gene_symbol')

    # Clean sample identifiers
    raw_samples = header[1:]
    cleaned = [clean_sample_id(s) for s in raw_samples]
    values = df.iloc[:, 1:].copy()
    values.columns = cleaned

    empty = [raw for raw, c in zip(raw_samples, cleaned) if c == '']
    if empty:
        warnings.warn(
            f"Dropping {len(empty)} sample columns with empty identifiers: {empty[:5]}",
            UserWarning
        )
        values = values.loc[:, [c != '' for c in cleaned]]

    if values.columns.duplicated().any():
        n_duplicates = int(values.columns.duplicated().sum())
        warnings.warn(
            f"Found {n_duplicates} duplicate sample IDs after cleaning. "
            "Using first occurrence of each.",
            UserWarning
        )
        values = values.loc[:, ~values.columns.duplicated(keep='first')]

    if values.shape[1] == 0:
        raise ValueError(f"Expression file {name} contains no usable sample columns")

    # Coerce to numbers; unreadable cells become NaN
    numeric = values.apply(lambda col: pd.to_numeric(col.str.strip(), errors='coerce'))
    data = numeric.to_numpy(dtype=float, copy=True)
    data[np.isinf(data)] = np.nan

    missing = np.isnan(data)
    quality_flags = np.full(data.shape, QualityFlag.ORIGINAL, dtype=int)
    quality_flags[missing] |= QualityFlag.MISSING_ORIGINAL
    if missing.any():
        logger.info(f"{int(missing.sum()):,} empty or non-numeric cells set to missing")

    if log_transform == "always":
        transform = True
    elif log_transform == "never":
        transform = False
    else:
        transform = needs_log_transform(data)

    if transform:
        data = np.log2(np.clip(data, 0, None) + 1)
        quality_flags[~missing] |= QualityFlag.LOG_TRANSFORMED
        logger.info("Applied log2(x + 1) transform")

    sample_ids = pd.Index(values.columns, name='sample')
    matrix = BioMatrix(
        data=data,
        feature_ids=feature_ids,
        sample_ids=sample_ids,
        sample_metadata=pd.DataFrame(index=sample_ids),
        quality_flags=quality_flags,
    )

    # Variance filter on the log scale
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", category=RuntimeWarning)
        variances = np.nanvar(matrix.data, axis=1, ddof=1)
    keep = np.nan_to_num(variances, nan=0.0) > min_variance
    n_dropped = int((~keep).sum())
    if n_dropped:
        logger.info(f"Dropped {n_dropped} genes with variance <= {min_variance}")

    if not keep.any():
        raise InsufficientDataError(
            f"No genes in {name} have variance above {min_variance}"
        )

    matrix = matrix.select_features(keep)
    logger.info(f"Loaded expression: {matrix.n_features} genes × {matrix.n_samples} samples")
    return matrix
