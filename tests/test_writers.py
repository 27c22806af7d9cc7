"""
Tests for output writers and the atomic file helpers.
"""

import json

import numpy as np
import pandas as pd
import pytest

from sexdeg.io.writers import write_deg_table, write_run_summary, write_selection, write_summary
from sexdeg.stats.differential import run_sex_differential, summarize_degs
from sexdeg.utils.fileio import atomic_write_frame, atomic_write_json


def test_deg_table(tmp_path, annotated):
    result = run_sex_differential(annotated, "female")

    passing = pd.read_csv(write_deg_table(result, tmp_path / "deg.csv"))
    every = pd.read_csv(write_deg_table(result, tmp_path / "deg_all.csv", all_genes=True))

    assert len(passing) == len(result)
    assert len(every) == annotated.matrix.n_features
    assert passing["gene_symbol"].tolist() == result.genes


def test_summary_keeps_metric_index(tmp_path, annotated):
    results = {sex: run_sex_differential(annotated, sex) for sex in ("female", "male")}
    path = write_summary(summarize_degs(results, annotated), tmp_path / "summary.csv")

    frame = pd.read_csv(path)
    assert frame.columns[0] == "metric"
    assert frame["metric"].tolist()[0] == "samples"


def test_selection(tmp_path):
    class Result:
        def to_frame(self):
            return pd.DataFrame({"feature": ["IL6", "TNF"], "importance": [0.6, 0.4]})

    frame = pd.read_csv(write_selection(Result(), tmp_path / "rfe_female.csv"))
    assert frame["feature"].tolist() == ["IL6", "TNF"]


def test_run_summary_numpy_values(tmp_path):
    payload = {"n": np.int64(3), "x": np.float64(0.5), "missing": np.nan, "genes": np.array(["A", "B"])}

    data = json.loads(write_run_summary(payload, tmp_path / "run_summary.json").read_text())

    assert data == {"n": 3, "x": 0.5, "missing": None, "genes": ["A", "B"]}


def test_creates_parent_directories(tmp_path):
    path = atomic_write_frame(tmp_path / "a" / "b" / "t.csv", pd.DataFrame({"x": [1]}))
    assert path.exists()


def test_failed_write_leaves_previous_file(tmp_path):
    path = tmp_path / "data.json"
    atomic_write_json(path, {"version": 1})

    with pytest.raises(TypeError):
        atomic_write_json(path, {"version": 2, "bad": object()})

    assert json.loads(path.read_text()) == {"version": 1}
    assert [p.name for p in tmp_path.iterdir()] == ["data.json"]
