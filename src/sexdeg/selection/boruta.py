"""
Boruta all-relevant feature selection.

Each iteration fits a random forest on the real genes plus shuffled
"shadow" copies; a gene is confirmed when it beats the best shadow
importance significantly more often than chance (two-step binomial test at
`alpha`). Runs for at most `max_iter` iterations; genes still undecided are
reported as tentative.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass

import numpy as np
import pandas as pd
from boruta import BorutaPy
from sklearn.ensemble import RandomForestClassifier

from sexdeg.stats.features import FeatureMatrix

__all__ = ['BorutaResult', 'run_boruta', 'IMPORTANCE_COLUMNS']

logger = logging.getLogger(__name__)

IMPORTANCE_COLUMNS = ['meanImp', 'medianImp', 'minImp', 'maxImp', 'rank']


@dataclass
class BorutaResult:
    """Confirmed genes and their importance statistics.

    `importance` is indexed by feature name, restricted to confirmed genes
    and sorted by decreasing meanImp.
    """

    sex: str
    confirmed: list[str]
    tentative: list[str]
    importance: pd.DataFrame
    n_features: int
    max_iter: int
    alpha: float

    @property
    def n_confirmed(self) -> int:
        return len(self.confirmed)

    def to_frame(self) -> pd.DataFrame:
        frame = self.importance.reset_index()
        return frame.rename(columns={frame.columns[0]: 'feature'})


def _importance_stats(history: np.ndarray | None, n_features: int) -> pd.DataFrame:
    """Per-feature summary over the importance history (rows = iterations)."""
    if history is None or len(history) == 0:
        empty = np.full(n_features, np.nan)
        return pd.DataFrame({'meanImp': empty, 'medianImp': empty, 'minImp': empty, 'maxImp': empty})

    history = np.atleast_2d(np.asarray(history, dtype=float))
    # BorutaPy seeds the history with a row of zeros
    if history.shape[0] > 1 and not np.any(history[0]):
        history = history[1:]

    with warnings.catch_warnings():
        warnings.simplefilter("ignore", category=RuntimeWarning)
        return pd.DataFrame({
            'meanImp': np.nanmean(history, axis=0),
            'medianImp': np.nanmedian(history, axis=0),
            'minImp': np.nanmin(history, axis=0),
            'maxImp': np.nanmax(history, axis=0),
        })


def run_boruta(
    features: FeatureMatrix,
    max_iter: int = 100,
    alpha: float = 0.01,
    random_state: int = 42,
    max_depth: int | None = 5,
) -> BorutaResult:
    """
    Run Boruta on one stratum's feature matrix.

    Args:
        features: Output of build_feature_matrix
        max_iter: Iteration budget
        alpha: Significance level of the shadow test
        random_state: Seed for the forest and the shadow shuffles
        max_depth: Tree depth of the random forest

    Returns:
        BorutaResult (confirmed may be empty)
    """
    if max_iter < 1:
        raise ValueError(f"max_iter must be >= 1, got {max_iter}")
    if not 0 < alpha < 1:
        raise ValueError(f"alpha must be in (0, 1), got {alpha}")

    forest = RandomForestClassifier(
        n_jobs=-1,
        class_weight='balanced',
        max_depth=max_depth,
        random_state=random_state,
    )
    selector = BorutaPy(
        estimator=forest,
        n_estimators='auto',
        max_iter=max_iter,
        alpha=alpha,
        random_state=random_state,
        verbose=0,
    )

    logger.info(
        f"Boruta on {features.sex}: {features.n_samples} samples × {features.n_features} genes "
        f"(max_iter={max_iter}, alpha={alpha})"
    )
    selector.fit(features.X.to_numpy(), features.y.to_numpy())

    names = np.asarray(features.feature_names, dtype=object)
    stats = _importance_stats(getattr(selector, 'importance_history_', None), len(names))
    stats.index = pd.Index(names, name='feature')
    stats['rank'] = np.asarray(selector.ranking_, dtype=int)

    # support_ turns all-true when nothing is rejected; the ranking keeps
    # confirmed (1) and tentative (2) apart
    ranking = stats['rank'].to_numpy()
    confirmed_mask = ranking == 1

    importance = stats.loc[confirmed_mask, IMPORTANCE_COLUMNS].sort_values('meanImp', ascending=False, kind='mergesort')
    confirmed = importance.index.tolist()
    tentative = names[ranking == 2].tolist()

    logger.info(f"Boruta on {features.sex}: {len(confirmed)} confirmed, {len(tentative)} tentative")

    return BorutaResult(
        sex=features.sex,
        confirmed=confirmed,
        tentative=tentative,
        importance=importance,
        n_features=len(names),
        max_iter=max_iter,
        alpha=alpha,
    )
