"""
Tests for the feature-selection workflows (Boruta, elastic net, RFE).

Forests and CV grids are kept small so the suite stays fast; the checks are
structural plus a sanity check that planted genes dominate.
"""

import pandas as pd
import pytest

from sexdeg.core.errors import InsufficientSamplesError
from sexdeg.selection import WORKFLOWS, run_boruta, run_elastic_net, run_rfe
from sexdeg.selection.boruta import IMPORTANCE_COLUMNS
from sexdeg.selection.elastic_net import cv_folds_for
from sexdeg.selection.rfe import candidate_sizes
from sexdeg.stats.differential import run_sex_differential
from sexdeg.stats.features import build_feature_matrix

from conftest import FEMALE_ONLY, SHARED


@pytest.fixture
def female_features(annotated):
    return build_feature_matrix(annotated, "female")


@pytest.fixture
def female_deg_features(annotated):
    degs = run_sex_differential(annotated, "female")
    return build_feature_matrix(annotated, "female", degs_only=True, deg_result=degs)


def test_registry():
    assert set(WORKFLOWS) == {"boruta", "elastic_net", "rfe"}


class TestBoruta:

    def test_result_structure(self, female_deg_features):
        result = run_boruta(female_deg_features, max_iter=20)

        assert result.sex == "female"
        assert result.n_features == female_deg_features.n_features
        assert set(result.confirmed) <= set(female_deg_features.feature_names)
        assert not set(result.tentative) & set(result.confirmed)
        assert list(result.importance.columns) == IMPORTANCE_COLUMNS
        assert list(result.importance.index) == result.confirmed
        assert result.importance["meanImp"].is_monotonic_decreasing
        assert (result.importance["rank"] == 1).all()

        frame = result.to_frame()
        assert frame.columns[0] == "feature"
        assert frame["feature"].tolist() == result.confirmed

    def test_undecided_genes_are_tentative(self, female_deg_features):
        # Two iterations cannot reach significance: nothing is confirmed or rejected
        result = run_boruta(female_deg_features, max_iter=3)

        assert result.confirmed == []
        assert result.importance.empty
        assert sorted(result.tentative) == sorted(female_deg_features.feature_names)

    def test_deterministic(self, female_deg_features):
        first = run_boruta(female_deg_features, max_iter=15, random_state=3)
        second = run_boruta(female_deg_features, max_iter=15, random_state=3)
        assert first.confirmed == second.confirmed

    @pytest.mark.parametrize("kwargs", [{"max_iter": 0}, {"alpha": 0.0}, {"alpha": 1.0}])
    def test_invalid_parameters(self, female_deg_features, kwargs):
        with pytest.raises(ValueError):
            run_boruta(female_deg_features, **kwargs)


class TestElasticNet:

    def test_planted_genes_selected(self, female_features):
        result = run_elastic_net(female_features, l1_ratio=0.5, n_cs=10)

        assert result.n_folds == 5
        assert result.l1_ratio == 0.5
        assert result.C > 0
        assert set(result.selected) <= set(female_features.feature_names)
        assert (result.coefficients["coefficient"] != 0).all()
        magnitudes = result.coefficients["coefficient"].abs()
        assert magnitudes.is_monotonic_decreasing
        if result.selected:
            assert result.selected[0] in FEMALE_ONLY + SHARED

    def test_to_frame_is_copy(self, female_deg_features):
        result = run_elastic_net(female_deg_features, n_cs=5)
        frame = result.to_frame()
        frame["coefficient"] = 0.0
        assert list(result.coefficients.columns) == ["feature", "coefficient"]
        assert not (result.coefficients["coefficient"] == 0).any()

    @pytest.mark.parametrize("l1_ratio", [-0.1, 1.1])
    def test_invalid_l1_ratio(self, female_features, l1_ratio):
        with pytest.raises(ValueError, match="l1_ratio"):
            run_elastic_net(female_features, l1_ratio=l1_ratio)


class TestCvFolds:

    def test_capped_by_minority_class(self):
        y = pd.Series([0] * 3 + [1] * 7)
        assert cv_folds_for(y, 5) == 3
        assert cv_folds_for(y, 2) == 2

    def test_minority_too_small(self):
        with pytest.raises(InsufficientSamplesError):
            cv_folds_for(pd.Series([0] + [1] * 9), 5)


class TestRFE:

    def test_candidate_sizes(self):
        assert candidate_sizes((1, 2, 5, 10, 25), 8) == [1, 2, 5, 8]
        assert candidate_sizes((25, 30), 4) == [4]
        assert candidate_sizes((0, -1, 3), 3) == [3]

    def test_candidate_sizes_without_features(self):
        with pytest.raises(ValueError):
            candidate_sizes((1, 2), 0)

    def test_result_structure(self, female_deg_features):
        result = run_rfe(female_deg_features, sizes=(1, 2, 5), cv_folds=3, n_estimators=25)
        grid = candidate_sizes((1, 2, 5), female_deg_features.n_features)

        assert result.n_folds == 3
        assert result.selected_size in grid
        assert len(result.selected) == result.selected_size
        assert sorted(result.cv_results["size"].tolist()) == grid
        assert result.cv_results["accuracy"].between(0, 1).all()
        # ties go to the smallest size
        best = result.cv_results["accuracy"].max()
        tied = result.cv_results.loc[result.cv_results["accuracy"] >= best - 1e-12, "size"]
        assert result.selected_size == tied.min()

        frame = result.to_frame()
        assert list(frame.columns) == ["feature", "importance"]
        assert frame["importance"].is_monotonic_decreasing
