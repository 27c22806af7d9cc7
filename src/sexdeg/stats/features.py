"""
Feature matrices for the machine-learning workflows.

Turns one sex stratum of the matched expression data into the sample-major
layout scikit-learn expects: X (samples × genes) plus a binary outcome
(1 = rheumatoid arthritis, 0 = control).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd

from sexdeg.core.errors import InsufficientDataError, InsufficientSamplesError
from sexdeg.io.phenotype import CASE, CONTROL
from sexdeg.stats.differential import DEGResult
from sexdeg.stats.matching import AnnotatedExpression

__all__ = ['MIN_MODEL_SAMPLES', 'FeatureMatrix', 'make_unique_names', 'build_feature_matrix']

logger = logging.getLogger(__name__)

MIN_MODEL_SAMPLES = 10


@dataclass
class FeatureMatrix:
    """Model-ready data for one stratum.

    Attributes:
        X: Samples × genes, unique column names, no missing values
        y: 1 for rheumatoid arthritis, 0 for control (indexed like X)
        labels: Canonical status strings (indexed like X)
        sex: Stratum
        degs_only: Whether genes were restricted to the stratum's DEGs
        n_imputed: Cells filled with the gene's stratum mean
    """

    X: pd.DataFrame
    y: pd.Series
    labels: pd.Series
    sex: str
    degs_only: bool
    n_imputed: int = 0

    @property
    def n_samples(self) -> int:
        return self.X.shape[0]

    @property
    def n_features(self) -> int:
        return self.X.shape[1]

    @property
    def feature_names(self) -> list[str]:
        return list(self.X.columns)

    @property
    def class_counts(self) -> dict[int, int]:
        return {int(k): int(v) for k, v in self.y.value_counts().sort_index().items()}


def make_unique_names(names) -> list[str]:
    """
    De-duplicate names by suffixing repeats with .1, .2, ...

    Examples:
        >>> make_unique_names(['IL6', 'TNF', 'IL6', 'IL6'])
        ['IL6', 'TNF', 'IL6.1', 'IL6.2']
    """
    seen: dict[str, int] = {}
    taken = set(map(str, names))
    unique = []
    for name in map(str, names):
        if name not in seen:
            seen[name] = 0
            unique.append(name)
            continue
        k = seen[name]
        while True:
            k += 1
            candidate = f"{name}.{k}"
            if candidate not in taken:
                break
        seen[name] = k
        taken.add(candidate)
        unique.append(candidate)
    return unique


def build_feature_matrix(
    annotated: AnnotatedExpression,
    sex: str,
    degs_only: bool = False,
    deg_result: DEGResult | None = None,
    min_samples: int = MIN_MODEL_SAMPLES,
) -> FeatureMatrix:
    """
    Build the sample-by-gene matrix for one sex stratum.

    Args:
        annotated: Matched expression + phenotypes
        sex: "female" or "male"
        degs_only: Restrict genes to the DEGs of `deg_result`
        deg_result: The stratum's DEGResult (required when degs_only)
        min_samples: Minimum samples with a canonical status

    Raises:
        InsufficientSamplesError: Fewer than `min_samples` usable samples
        InsufficientDataError: A class is absent, or the DEG set is empty
        ValueError: degs_only without a matching DEGResult
    """
    if degs_only:
        if deg_result is None:
            raise ValueError("degs_only requires the stratum's DEGResult; run differential expression first")
        if deg_result.sex != sex:
            raise ValueError(f"DEGResult is for '{deg_result.sex}', not '{sex}'")

    stratum = annotated.stratum(sex)
    status = stratum.sample_metadata['status']
    canonical = status.isin([CONTROL, CASE]).to_numpy()
    if not canonical.all():
        logger.info(f"{sex}: excluding {int((~canonical).sum())} samples with non-canonical status")
        stratum = stratum.select_samples(canonical)

    if stratum.n_samples < min_samples:
        raise InsufficientSamplesError(
            f"Insufficient samples for modeling: {stratum.n_samples} {sex} samples "
            f"(need at least {min_samples})"
        )

    labels = stratum.sample_metadata['status'].copy()
    y = (labels == CASE).astype(int).rename('status')
    if y.nunique() < 2:
        raise InsufficientDataError(
            f"{sex} stratum has only '{labels.iloc[0]}' samples; both classes are required"
        )

    if degs_only:
        deg_genes = set(deg_result.genes)
        if not deg_genes:
            raise InsufficientDataError(
                f"No DEGs in the {sex} stratum at logfc>{deg_result.logfc}, "
                f"adjpval<{deg_result.adjpval}; nothing to model"
            )
        stratum = stratum.select_features(stratum.feature_ids.isin(deg_genes))

    data = stratum.data.copy()

    # Genes never observed in this stratum cannot be imputed
    observed = ~np.all(np.isnan(data), axis=1)
    if not observed.all():
        logger.info(f"{sex}: dropping {int((~observed).sum())} genes with no observed values")
        data = data[observed]
    feature_ids = stratum.feature_ids[observed]

    if data.shape[0] == 0:
        raise InsufficientDataError(f"No genes with observed values in the {sex} stratum")

    missing = np.isnan(data)
    n_imputed = int(missing.sum())
    if n_imputed:
        gene_means = np.nanmean(data, axis=1)
        data[missing] = np.take(gene_means, np.nonzero(missing)[0])
        logger.debug(f"{sex}: filled {n_imputed} missing cells with gene means")

    X = pd.DataFrame(
        data.T,
        index=stratum.sample_ids,
        columns=make_unique_names(feature_ids),
    )

    logger.info(
        f"{sex} feature matrix: {X.shape[0]} samples × {X.shape[1]} genes "
        f"({int(y.sum())} RA, {int((y == 0).sum())} control)"
    )

    return FeatureMatrix(
        X=X,
        y=y,
        labels=labels,
        sex=sex,
        degs_only=degs_only,
        n_imputed=n_imputed,
    )
