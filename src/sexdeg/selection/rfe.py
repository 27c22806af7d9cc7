"""
Recursive feature elimination with a random-forest ranking.

For every candidate subset size, RFE repeatedly refits the forest and drops
the least important genes until the size is reached; stratified
cross-validation scores each size by accuracy and the best size is refit on
all samples. Ties go to the smaller size.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

import numpy as np
import pandas as pd
from sklearn.ensemble import RandomForestClassifier
from sklearn.feature_selection import RFE
from sklearn.model_selection import GridSearchCV, StratifiedKFold

from sexdeg.selection.elastic_net import cv_folds_for
from sexdeg.stats.features import FeatureMatrix

__all__ = ['DEFAULT_RFE_SIZES', 'RFEResult', 'candidate_sizes', 'run_rfe']

logger = logging.getLogger(__name__)

DEFAULT_RFE_SIZES = (1, 2, 3, 4, 5, 10, 15, 20, 25)


@dataclass
class RFEResult:
    """Selected subset size, its genes (most important first) and CV accuracy per size."""

    sex: str
    selected_size: int
    selected: list[str]
    importance: pd.Series
    cv_results: pd.DataFrame
    n_folds: int

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({
            'feature': self.selected,
            'importance': self.importance.loc[self.selected].to_numpy(),
        })


def candidate_sizes(sizes: Sequence[int], n_features: int) -> list[int]:
    """
    Valid subset sizes for a matrix with `n_features` genes.

    Sizes outside [1, n_features) are discarded; the full set is always
    evaluated.

    Examples:
        >>> candidate_sizes((1, 2, 5, 10, 25), 8)
        [1, 2, 5, 8]
    """
    if n_features < 1:
        raise ValueError("RFE needs at least one feature")
    return sorted({int(s) for s in sizes if 1 <= int(s) < n_features} | {n_features})


def run_rfe(
    features: FeatureMatrix,
    sizes: Sequence[int] = DEFAULT_RFE_SIZES,
    cv_folds: int = 5,
    n_estimators: int = 200,
    step: int | float = 0.1,
    random_state: int = 42,
) -> RFEResult:
    """
    Cross-validated RFE over candidate subset sizes.

    Args:
        features: Output of build_feature_matrix
        sizes: Candidate subset sizes
        cv_folds: Requested stratified folds (capped by the minority class)
        n_estimators: Trees per forest
        step: Genes (int) or fraction of genes (float) removed per elimination round
        random_state: Seed for folds and forests

    Raises:
        InsufficientSamplesError: Too few samples in the minority class
    """
    grid = candidate_sizes(sizes, features.n_features)
    n_folds = cv_folds_for(features.y, cv_folds)

    rfe = RFE(
        estimator=RandomForestClassifier(n_estimators=n_estimators, random_state=random_state, n_jobs=-1),
        step=step,
    )
    search = GridSearchCV(
        rfe,
        param_grid={'n_features_to_select': grid},
        scoring='accuracy',
        cv=StratifiedKFold(n_splits=n_folds, shuffle=True, random_state=random_state),
        refit=True,
    )

    logger.info(
        f"RFE on {features.sex}: {features.n_samples} samples × {features.n_features} genes, "
        f"sizes {grid}, {n_folds}-fold CV"
    )
    search.fit(features.X, features.y.to_numpy())

    cv_results = pd.DataFrame({
        'size': np.asarray(search.cv_results_['param_n_features_to_select'], dtype=int),
        'accuracy': search.cv_results_['mean_test_score'],
        'accuracy_sd': search.cv_results_['std_test_score'],
    })
    best_accuracy = cv_results['accuracy'].max()
    selected_size = int(cv_results.loc[np.isclose(cv_results['accuracy'], best_accuracy), 'size'].min())

    if selected_size == search.best_params_['n_features_to_select']:
        best = search.best_estimator_
    else:
        best = RFE(
            estimator=RandomForestClassifier(n_estimators=n_estimators, random_state=random_state, n_jobs=-1),
            n_features_to_select=selected_size,
            step=step,
        ).fit(features.X, features.y.to_numpy())

    names = np.asarray(features.feature_names, dtype=object)[best.support_]
    importance = pd.Series(best.estimator_.feature_importances_, index=names, name='importance')
    importance = importance.sort_values(ascending=False, kind='mergesort')

    logger.info(f"RFE on {features.sex}: selected {selected_size} genes (CV accuracy {best_accuracy:.3f})")

    return RFEResult(
        sex=features.sex,
        selected_size=selected_size,
        selected=importance.index.tolist(),
        importance=importance,
        cv_results=cv_results,
        n_folds=n_folds,
    )
