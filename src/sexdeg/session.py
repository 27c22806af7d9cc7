"""
Per-session analysis context with demand-driven recomputation.

One AnalysisSession holds everything a single user has uploaded and
everything derived from it. Derived results are memoised by their
parameters and by the generation counters of the uploads they depend on:

    expression ─┐
                ├─ annotated ─ differential(sex, thresholds) ─┬─ summary
    phenotypes ─┘                                             │
                                    feature_matrix(sex, degs_only, ...)
                                                              │
                                      boruta / elastic_net / rfe

A new upload bumps its counter, and every memoised entry built from the
old counter is pruned. Failures are never cached: a node that raised is
recomputed on the next request.

Example:
    >>> session = AnalysisSession()
    >>> session.set_expression("expression.csv")
    >>> session.set_phenotypes("phenotype.csv")
    >>> female = session.differential("female")
    >>> session.latest("differential", sex="female") is female
    True
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Hashable, Sequence

import pandas as pd

from sexdeg.core.biomatrix import BioMatrix
from sexdeg.core.errors import InsufficientDataError
from sexdeg.io.formats import TableSource
from sexdeg.io.loaders import DEFAULT_MIN_VARIANCE, load_expression
from sexdeg.io.phenotype import SEXES, PhenotypeColumnInferencer, load_phenotypes
from sexdeg.selection.boruta import BorutaResult, run_boruta
from sexdeg.selection.elastic_net import ElasticNetResult, run_elastic_net
from sexdeg.selection.rfe import DEFAULT_RFE_SIZES, RFEResult, run_rfe
from sexdeg.stats.differential import (
    DEFAULT_ADJPVAL,
    DEFAULT_LOGFC,
    DEGResult,
    run_sex_differential,
    summarize_degs,
)
from sexdeg.stats.features import FeatureMatrix, build_feature_matrix
from sexdeg.stats.matching import AnnotatedExpression, match_samples

__all__ = ['AnalysisSession']

logger = logging.getLogger(__name__)

_UPLOADS = ('expression', 'phenotypes')


class AnalysisSession:
    """
    Uploads plus memoised derived results for one user.

    Every derived node depends on both uploads, so the memo key of an entry
    is (node name, parameters) and its validity stamp is the pair of upload
    generations current when it was computed.
    """

    def __init__(self, random_state: int = 42):
        self.random_state = random_state
        self._generations = dict.fromkeys(_UPLOADS, 0)
        self._uploads: dict[str, Any] = dict.fromkeys(_UPLOADS)
        self._cache: dict[Hashable, tuple[tuple[int, ...], Any]] = {}

    # ------------------------------------------------------------------
    # Uploads
    # ------------------------------------------------------------------

    def _stamp(self) -> tuple[int, ...]:
        return tuple(self._generations[name] for name in _UPLOADS)

    def _replace_upload(self, name: str, value: Any) -> None:
        self._uploads[name] = value
        self._generations[name] += 1
        stamp = self._stamp()
        stale = [key for key, (entry_stamp, _) in self._cache.items() if entry_stamp != stamp]
        for key in stale:
            del self._cache[key]
        logger.debug(f"{name} upload generation {self._generations[name]}; pruned {len(stale)} cached results")

    def set_expression(
        self,
        source: TableSource,
        min_variance: float = DEFAULT_MIN_VARIANCE,
        log_transform: str = "auto",
    ) -> BioMatrix:
        """Load a new expression upload; invalidates every derived result."""
        matrix = load_expression(source, min_variance=min_variance, log_transform=log_transform)
        self._replace_upload('expression', matrix)
        return matrix

    def set_phenotypes(
        self,
        source: TableSource,
        inferencer: PhenotypeColumnInferencer | None = None,
    ) -> pd.DataFrame:
        """Load a new phenotype upload; invalidates every derived result."""
        table = load_phenotypes(source, inferencer=inferencer)
        self._replace_upload('phenotypes', table)
        return table

    @property
    def expression(self) -> BioMatrix | None:
        return self._uploads['expression']

    @property
    def phenotypes(self) -> pd.DataFrame | None:
        return self._uploads['phenotypes']

    @property
    def ready(self) -> bool:
        """Both uploads present."""
        return all(self._uploads[name] is not None for name in _UPLOADS)

    @property
    def generations(self) -> dict[str, int]:
        return dict(self._generations)

    # ------------------------------------------------------------------
    # Memoisation
    # ------------------------------------------------------------------

    @staticmethod
    def _key(node: str, params: dict[str, Any]) -> Hashable:
        return (node, tuple(sorted(params.items())))

    def _memo(self, node: str, params: dict[str, Any], compute: Callable[[], Any]) -> Any:
        key = self._key(node, params)
        stamp = self._stamp()
        entry = self._cache.get(key)
        if entry is not None and entry[0] == stamp:
            return entry[1]
        logger.debug(f"Computing {node} {params}")
        value = compute()
        self._cache[key] = (stamp, value)
        return value

    def latest(self, node: str, **params: Any) -> Any | None:
        """
        Cached result of a node, or None if it has not been computed for the
        current uploads. Never triggers computation.

        Parameters must be passed exactly as the node method received them,
        defaults included (e.g. ``latest("differential", sex="female",
        logfc=0.5, adjpval=0.05)``); omitted parameters take the node's
        defaults.
        """
        defaults = _NODE_DEFAULTS.get(node)
        if defaults is None:
            raise KeyError(f"Unknown node '{node}'. Choose from: {', '.join(_NODE_DEFAULTS)}")
        full = {**defaults, **params}
        if 'sizes' in full:
            full['sizes'] = tuple(full['sizes'])
        entry = self._cache.get(self._key(node, full))
        if entry is None or entry[0] != self._stamp():
            return None
        return entry[1]

    def _require_uploads(self) -> None:
        missing = [name for name in _UPLOADS if self._uploads[name] is None]
        if missing:
            raise RuntimeError(f"Upload {' and '.join(missing)} before running an analysis")

    # ------------------------------------------------------------------
    # Derived nodes
    # ------------------------------------------------------------------

    def annotated(self) -> AnnotatedExpression:
        """Matched expression + phenotypes."""
        self._require_uploads()
        return self._memo(
            'annotated', {},
            lambda: match_samples(self._uploads['expression'], self._uploads['phenotypes']),
        )

    def differential(
        self,
        sex: str,
        logfc: float = DEFAULT_LOGFC,
        adjpval: float = DEFAULT_ADJPVAL,
    ) -> DEGResult:
        params = {'sex': sex, 'logfc': float(logfc), 'adjpval': float(adjpval)}
        return self._memo(
            'differential', params,
            lambda: run_sex_differential(self.annotated(), sex, logfc=logfc, adjpval=adjpval),
        )

    def summary(
        self,
        logfc: float = DEFAULT_LOGFC,
        adjpval: float = DEFAULT_ADJPVAL,
    ) -> pd.DataFrame:
        """Cross-sex summary; a stratum that cannot be analysed gets NaN counts."""
        def compute() -> pd.DataFrame:
            annotated = self.annotated()
            results = {}
            for sex in SEXES:
                try:
                    results[sex] = self.differential(sex, logfc=logfc, adjpval=adjpval)
                except InsufficientDataError as e:
                    logger.warning(f"Summary: {sex} stratum not analysed: {e}")
            return summarize_degs(results, annotated)

        return self._memo('summary', {'logfc': float(logfc), 'adjpval': float(adjpval)}, compute)

    def feature_matrix(
        self,
        sex: str,
        degs_only: bool = False,
        logfc: float = DEFAULT_LOGFC,
        adjpval: float = DEFAULT_ADJPVAL,
    ) -> FeatureMatrix:
        """Feature matrix for one stratum; runs differential expression first when degs_only."""
        params = {'sex': sex, 'degs_only': bool(degs_only), 'logfc': float(logfc), 'adjpval': float(adjpval)}

        def compute() -> FeatureMatrix:
            deg_result = self.differential(sex, logfc=logfc, adjpval=adjpval) if degs_only else None
            return build_feature_matrix(self.annotated(), sex, degs_only=degs_only, deg_result=deg_result)

        return self._memo('feature_matrix', params, compute)

    def boruta(
        self,
        sex: str,
        degs_only: bool = False,
        logfc: float = DEFAULT_LOGFC,
        adjpval: float = DEFAULT_ADJPVAL,
        max_iter: int = 100,
        alpha: float = 0.01,
    ) -> BorutaResult:
        params = {
            'sex': sex, 'degs_only': bool(degs_only), 'logfc': float(logfc), 'adjpval': float(adjpval),
            'max_iter': int(max_iter), 'alpha': float(alpha),
        }
        return self._memo('boruta', params, lambda: run_boruta(
            self.feature_matrix(sex, degs_only, logfc, adjpval),
            max_iter=max_iter, alpha=alpha, random_state=self.random_state,
        ))

    def elastic_net(
        self,
        sex: str,
        degs_only: bool = False,
        logfc: float = DEFAULT_LOGFC,
        adjpval: float = DEFAULT_ADJPVAL,
        l1_ratio: float = 0.5,
        cv_folds: int = 5,
    ) -> ElasticNetResult:
        params = {
            'sex': sex, 'degs_only': bool(degs_only), 'logfc': float(logfc), 'adjpval': float(adjpval),
            'l1_ratio': float(l1_ratio), 'cv_folds': int(cv_folds),
        }
        return self._memo('elastic_net', params, lambda: run_elastic_net(
            self.feature_matrix(sex, degs_only, logfc, adjpval),
            l1_ratio=l1_ratio, cv_folds=cv_folds, random_state=self.random_state,
        ))

    def rfe(
        self,
        sex: str,
        degs_only: bool = False,
        logfc: float = DEFAULT_LOGFC,
        adjpval: float = DEFAULT_ADJPVAL,
        sizes: Sequence[int] = DEFAULT_RFE_SIZES,
        cv_folds: int = 5,
    ) -> RFEResult:
        params = {
            'sex': sex, 'degs_only': bool(degs_only), 'logfc': float(logfc), 'adjpval': float(adjpval),
            'sizes': tuple(int(s) for s in sizes), 'cv_folds': int(cv_folds),
        }
        return self._memo('rfe', params, lambda: run_rfe(
            self.feature_matrix(sex, degs_only, logfc, adjpval),
            sizes=sizes, cv_folds=cv_folds, random_state=self.random_state,
        ))


_NODE_DEFAULTS: dict[str, dict[str, Any]] = {
    'annotated': {},
    'differential': {'logfc': DEFAULT_LOGFC, 'adjpval': DEFAULT_ADJPVAL},
    'summary': {'logfc': DEFAULT_LOGFC, 'adjpval': DEFAULT_ADJPVAL},
    'feature_matrix': {'degs_only': False, 'logfc': DEFAULT_LOGFC, 'adjpval': DEFAULT_ADJPVAL},
    'boruta': {'degs_only': False, 'logfc': DEFAULT_LOGFC, 'adjpval': DEFAULT_ADJPVAL,
               'max_iter': 100, 'alpha': 0.01},
    'elastic_net': {'degs_only': False, 'logfc': DEFAULT_LOGFC, 'adjpval': DEFAULT_ADJPVAL,
                    'l1_ratio': 0.5, 'cv_folds': 5},
    'rfe': {'degs_only': False, 'logfc': DEFAULT_LOGFC, 'adjpval': DEFAULT_ADJPVAL,
            'sizes': DEFAULT_RFE_SIZES, 'cv_folds': 5},
}
