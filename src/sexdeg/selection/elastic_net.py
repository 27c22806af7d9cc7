"""
Elastic-net logistic regression with cross-validated penalty strength.

Genes are standardised, then LogisticRegressionCV searches a grid of
inverse penalty strengths C at a fixed L1/L2 mixing parameter. Genes with a
nonzero coefficient at the selected C are reported.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd
from sklearn.linear_model import LogisticRegressionCV
from sklearn.model_selection import StratifiedKFold
from sklearn.preprocessing import StandardScaler

from sexdeg.core.errors import InsufficientSamplesError
from sexdeg.stats.features import FeatureMatrix

__all__ = ['ElasticNetResult', 'run_elastic_net', 'cv_folds_for']

logger = logging.getLogger(__name__)


@dataclass
class ElasticNetResult:
    """Nonzero coefficients at the cross-validated penalty.

    `coefficients` has columns feature, coefficient (on standardised genes;
    positive = higher in rheumatoid arthritis), sorted by |coefficient|.
    """

    sex: str
    coefficients: pd.DataFrame
    intercept: float
    C: float
    l1_ratio: float
    n_folds: int

    @property
    def selected(self) -> list[str]:
        return self.coefficients['feature'].tolist()

    def to_frame(self) -> pd.DataFrame:
        return self.coefficients.copy()


def cv_folds_for(y: pd.Series, requested: int) -> int:
    """
    Stratified fold count: the request, capped by the minority-class size.

    Raises:
        InsufficientSamplesError: If the minority class has fewer than 2 samples
    """
    minority = int(y.value_counts().min())
    n_folds = min(requested, minority)
    if n_folds < 2:
        raise InsufficientSamplesError(
            f"Insufficient samples for modeling: minority class has {minority} sample(s), "
            "cross-validation needs at least 2"
        )
    if n_folds < requested:
        logger.info(f"Reducing CV folds from {requested} to {n_folds} (minority class size)")
    return n_folds


def run_elastic_net(
    features: FeatureMatrix,
    l1_ratio: float = 0.5,
    cv_folds: int = 5,
    n_cs: int = 20,
    random_state: int = 42,
    max_iter: int = 10000,
) -> ElasticNetResult:
    """
    Fit a cross-validated elastic-net logistic regression.

    Args:
        features: Output of build_feature_matrix
        l1_ratio: Mixing parameter in [0, 1] (0 = ridge, 1 = lasso)
        cv_folds: Requested stratified folds
        n_cs: Size of the C grid
        random_state: Seed for fold shuffling and the saga solver
        max_iter: Solver iteration cap

    Raises:
        ValueError: l1_ratio outside [0, 1]
        InsufficientSamplesError: Too few samples in the minority class
    """
    if not 0.0 <= l1_ratio <= 1.0:
        raise ValueError(f"l1_ratio must be in [0, 1], got {l1_ratio}")

    n_folds = cv_folds_for(features.y, cv_folds)
    X_scaled = StandardScaler().fit_transform(features.X.to_numpy())
    y = features.y.to_numpy()

    clf = LogisticRegressionCV(
        Cs=n_cs,
        cv=StratifiedKFold(n_splits=n_folds, shuffle=True, random_state=random_state),
        penalty='elasticnet',
        solver='saga',
        l1_ratios=[l1_ratio],
        scoring='neg_log_loss',
        max_iter=max_iter,
        random_state=random_state,
        n_jobs=-1,
    )
    logger.info(
        f"Elastic net on {features.sex}: {features.n_samples} samples × {features.n_features} genes "
        f"(l1_ratio={l1_ratio}, {n_folds}-fold CV)"
    )
    clf.fit(X_scaled, y)

    coef = clf.coef_.ravel()
    nonzero = coef != 0
    coefficients = pd.DataFrame({
        'feature': np.asarray(features.feature_names, dtype=object)[nonzero],
        'coefficient': coef[nonzero],
    })
    order = np.argsort(-np.abs(coefficients['coefficient'].to_numpy()), kind='mergesort')
    coefficients = coefficients.iloc[order].reset_index(drop=True)

    C = float(np.ravel(clf.C_)[0])
    logger.info(f"Elastic net on {features.sex}: {len(coefficients)} nonzero coefficients at C={C:.4g}")

    return ElasticNetResult(
        sex=features.sex,
        coefficients=coefficients,
        intercept=float(np.ravel(clf.intercept_)[0]),
        C=C,
        l1_ratio=l1_ratio,
        n_folds=n_folds,
    )
