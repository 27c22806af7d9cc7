"""
Smoke tests for the figures (rendered off-screen with the Agg backend).
"""

import pandas as pd
import pytest

from sexdeg.selection.rfe import RFEResult
from sexdeg.stats.differential import run_sex_differential
from sexdeg.viz import PALETTES, DifferentialVisualizer, Figure

from conftest import FEMALE_ONLY


@pytest.fixture
def viz():
    return DifferentialVisualizer(style="paper")


def test_volcano(tmp_path, viz, annotated):
    result = run_sex_differential(annotated, "female")

    figure = viz.plot_volcano(result, n_labels=3)

    assert isinstance(figure, Figure)
    assert figure.metadata["n_degs"] == len(result)
    assert figure.metadata["n_labels"] == min(3, result.n_up) + min(3, result.n_down)
    path = figure.save(tmp_path / "volcano.png", dpi=72)
    assert path.stat().st_size > 0
    assert figure.to_png_bytes(dpi=50).startswith(b"\x89PNG")
    figure.close()


def test_volcano_without_degs(viz, null_annotated):
    result = run_sex_differential(null_annotated, "male", logfc=50.0)
    figure = viz.plot_volcano(result)
    assert figure.metadata["n_labels"] == 0
    figure.close()


def test_boxplots_map_unique_names(viz, annotated):
    figure = viz.plot_expression_boxplots(annotated, [FEMALE_ONLY[0], f"{FEMALE_ONLY[1]}.1", "NOT_A_GENE"])

    assert figure.metadata["genes"] == FEMALE_ONLY[:2]
    assert figure.metadata["sexes"] == ["female", "male"]
    figure.close()


def test_boxplots_max_genes(viz, annotated):
    figure = viz.plot_expression_boxplots(annotated, FEMALE_ONLY, max_genes=4)
    assert len(figure.metadata["genes"]) == 4
    figure.close()


def test_boxplots_no_known_gene(viz, annotated):
    with pytest.raises(ValueError, match="None of the requested genes"):
        viz.plot_expression_boxplots(annotated, ["NOT_A_GENE"])


def test_rfe_profile(viz):
    result = RFEResult(
        sex="male",
        selected_size=2,
        selected=["G010", "G011"],
        importance=pd.Series([0.6, 0.4], index=["G010", "G011"]),
        cv_results=pd.DataFrame({"size": [1, 2, 5], "accuracy": [0.7, 0.9, 0.9], "accuracy_sd": [0.1, 0.05, 0.1]}),
        n_folds=5,
    )

    figure = viz.plot_rfe_profile(result)

    assert figure.metadata["selected_size"] == 2
    assert "created_at" in figure.metadata
    figure.close()


def test_palette_by_name_and_fallback():
    assert DifferentialVisualizer(palette="colorblind").palette == PALETTES["colorblind"]
    assert DifferentialVisualizer(palette="no-such-palette").palette == PALETTES["default"]
