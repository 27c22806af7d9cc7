"""
End-to-end tests for the sexdeg command line.
"""

import argparse
import json
import subprocess
import sys

import pandas as pd
import pytest

from sexdeg.cli import main
from sexdeg.cli import app as app_cli
from sexdeg.stats.differential import SUMMARY_ROWS


def _run(*extra, expression, phenotype, output):
    return main([
        "run",
        "--expression", str(expression),
        "--phenotype", str(phenotype),
        "--output", str(output),
        *extra,
    ])


def test_no_command_prints_help(capsys):
    assert main([]) == 0
    assert "run" in capsys.readouterr().out


def test_version(capsys):
    with pytest.raises(SystemExit) as exc:
        main(["--version"])
    assert exc.value.code == 0
    assert "sexdeg" in capsys.readouterr().out


class TestRun:

    def test_differential_only(self, tmp_path, expression_csv, phenotype_csv):
        out = tmp_path / "results"

        code = _run("--workflows", expression=expression_csv, phenotype=phenotype_csv, output=out)

        assert code == 0
        for sex in ("female", "male"):
            assert (out / f"deg_{sex}.csv").exists()
            assert (out / f"deg_{sex}_all.csv").exists()
            assert (out / f"volcano_{sex}.png").stat().st_size > 0

        summary = pd.read_csv(out / "summary.csv", index_col=0)
        assert list(summary.index) == SUMMARY_ROWS
        assert list(summary.columns) == ["female", "male"]
        assert summary.loc["samples"].tolist() == [10, 10]

        female = pd.read_csv(out / "deg_female.csv")
        assert list(female.columns) == ["gene_symbol", "log2FoldChange", "adjustedPValue", "direction"]
        assert len(female) == summary.loc["degs", "female"]

        manifest = json.loads((out / "run_summary.json").read_text())
        assert manifest["matching"]["n_matched"] == 20
        assert manifest["selections"] == {}
        assert manifest["errors"] == {}
        assert "summary.csv" in manifest["files"]
        assert manifest["summary"]["female"]["degs"] == len(female)

    def test_with_workflow(self, tmp_path, expression_csv, phenotype_csv):
        out = tmp_path / "results"

        code = _run(
            "--workflows", "elastic_net", "--degs-only", "--sexes", "female", "--cv-folds", "3",
            expression=expression_csv, phenotype=phenotype_csv, output=out,
        )

        assert code == 0
        assert not (out / "deg_male.csv").exists()
        selection = pd.read_csv(out / "elastic_net_female.csv")
        assert list(selection.columns) == ["feature", "coefficient"]
        assert (out / "boxplot_female.png").exists()

        manifest = json.loads((out / "run_summary.json").read_text())
        assert manifest["config"]["selection"]["degs_only"] is True
        assert manifest["selections"]["female"]["elastic_net"] == selection["feature"].tolist()

    def test_config_file_with_override(self, tmp_path, expression_csv, phenotype_csv):
        config = tmp_path / "analysis.yaml"
        config.write_text(
            f"expression: {expression_csv}\n"
            f"phenotype: {phenotype_csv}\n"
            f"output: {tmp_path / 'from_config'}\n"
            "thresholds:\n  logfc: 1.0\n"
            "selection:\n  workflows: []\n"
        )

        code = main(["run", "--config", str(config), "--logfc", "1.5"])

        assert code == 0
        manifest = json.loads((tmp_path / "from_config" / "run_summary.json").read_text())
        assert manifest["config"]["thresholds"]["logfc"] == 1.5

    def test_missing_required(self, tmp_path, expression_csv):
        assert main(["run", "--expression", str(expression_csv), "--output", str(tmp_path)]) == 1

    def test_bad_config(self, tmp_path, expression_csv, phenotype_csv):
        code = _run("--adjpval", "2", expression=expression_csv, phenotype=phenotype_csv, output=tmp_path)
        assert code == 1

    def test_no_overlap(self, tmp_path, expression_csv):
        phenotype = tmp_path / "other.csv"
        phenotype.write_text("sample,sex,status\nX1,F,RA\nX2,M,control\n")
        code = _run(expression=expression_csv, phenotype=phenotype, output=tmp_path / "out")
        assert code == 1

    def test_failed_stratum_recorded(self, tmp_path, expression_csv, phenotype_frame):
        pheno = phenotype_frame.copy()
        pheno.loc[pheno["Sex"] == "M", "Disease State"] = "healthy"
        path = tmp_path / "pheno_no_male_cases.csv"
        pheno.to_csv(path, index=False)
        out = tmp_path / "out"

        code = _run("--workflows", expression=expression_csv, phenotype=path, output=out)

        assert code == 0
        manifest = json.loads((out / "run_summary.json").read_text())
        assert "differential_male" in manifest["errors"]
        assert manifest["summary"]["male"]["degs"] is None
        assert not (out / "deg_male.csv").exists()


class TestApp:

    def test_build_command(self):
        args = argparse.Namespace(port=8502, streamlit_args=["--", "--server.headless", "true"])
        command = app_cli.build_command(args)

        assert command[:4] == [sys.executable, "-m", "streamlit", "run"]
        assert command[4].endswith("app.py")
        assert command[5:] == ["--server.port", "8502", "--server.headless", "true"]

    def test_launch_passes_config(self, tmp_path, monkeypatch):
        config = tmp_path / "app.yaml"
        config.write_text("thresholds:\n  logfc: 1.0\n")
        calls = {}

        def fake_call(command, env):
            calls["command"] = command
            calls["env"] = env
            return 0

        monkeypatch.setattr(subprocess, "call", fake_call)

        assert main(["app", "--config", str(config)]) == 0
        assert calls["env"]["SEXDEG_CONFIG"] == str(config.resolve())
        assert calls["command"][3] == "run"

    def test_invalid_config_not_launched(self, tmp_path, monkeypatch):
        config = tmp_path / "app.yaml"
        config.write_text("thresholds:\n  logfc: -1\n")
        monkeypatch.setattr(subprocess, "call", lambda *a, **k: pytest.fail("should not launch"))

        assert main(["app", "--config", str(config)]) == 1
