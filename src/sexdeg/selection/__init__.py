"""
Feature-selection workflows over a stratum's FeatureMatrix.

Three independent, stateless wrappers:
    - run_boruta: all-relevant selection against shadow features
    - run_elastic_net: penalised logistic regression, CV-selected penalty
    - run_rfe: recursive elimination with a random-forest ranking

Each accepts the output of sexdeg.stats.features.build_feature_matrix and
returns a result object with a ``to_frame()`` table of selected genes.
"""

from sexdeg.selection.boruta import BorutaResult, run_boruta
from sexdeg.selection.elastic_net import ElasticNetResult, run_elastic_net
from sexdeg.selection.rfe import DEFAULT_RFE_SIZES, RFEResult, run_rfe

WORKFLOWS = {
    'boruta': run_boruta,
    'elastic_net': run_elastic_net,
    'rfe': run_rfe,
}

__all__ = [
    'BorutaResult',
    'run_boruta',
    'ElasticNetResult',
    'run_elastic_net',
    'RFEResult',
    'run_rfe',
    'DEFAULT_RFE_SIZES',
    'WORKFLOWS',
]
