"""
Pytest configuration and shared fixtures.

Synthetic study used throughout: 100 genes × 20 samples on the log2 scale,
10 female and 10 male, each sex split 5 control / 5 rheumatoid arthritis.
Effects are planted per sex so tests know which genes must come out:

    G000-G009  +2 in female RA only
    G010-G019  -2 in male RA only
    G020-G024  +2 in RA of both sexes
    G025-G099  no effect

RA samples reuse a shuffle of their sex's control noise, so genes without a
planted effect have a group difference of exactly zero and planted genes a
difference of exactly the shift.
"""

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest

from sexdeg.io.loaders import load_expression
from sexdeg.io.phenotype import load_phenotypes
from sexdeg.stats.matching import match_samples

N_GENES = 100
FEMALE_ONLY = [f"G{i:03d}" for i in range(0, 10)]
MALE_ONLY = [f"G{i:03d}" for i in range(10, 20)]
SHARED = [f"G{i:03d}" for i in range(20, 25)]


def generate_phenotype_frame(n_per_group: int = 5) -> pd.DataFrame:
    """Phenotype table with GEO-style headers and raw values."""
    rows = []
    k = 1
    for sex in ("F", "M"):
        for status in ("healthy", "RA"):
            for _ in range(n_per_group):
                rows.append({"Sample": f"GSM{k:03d}", "Sex": sex, "Disease State": status, "age": 40 + k})
                k += 1
    return pd.DataFrame(rows)


def generate_expression_frame(
    phenotypes: pd.DataFrame,
    n_genes: int = N_GENES,
    shift: float = 2.0,
    noise: float = 0.25,
    planted: bool = True,
    seed: int = 42,
) -> pd.DataFrame:
    """
    Log2-scale expression (gene column + one column per sample).

    Args:
        phenotypes: Output of generate_phenotype_frame
        n_genes: Number of genes
        shift: Planted log2 fold change magnitude
        noise: Per-cell standard deviation
        planted: If False, no gene has an effect
        seed: Random seed for reproducibility
    """
    rng = np.random.default_rng(seed)
    n_samples = len(phenotypes)
    baseline = rng.uniform(6.0, 10.0, size=(n_genes, 1))
    data = np.repeat(baseline, n_samples, axis=1)

    # Within each sex the RA samples carry the controls' noise in shuffled
    # order, so a gene without a planted effect has equal group means
    sex = phenotypes["Sex"].to_numpy()
    status = phenotypes["Disease State"].to_numpy()
    for code in ("F", "M"):
        controls = np.flatnonzero((sex == code) & (status == "healthy"))
        cases = np.flatnonzero((sex == code) & (status == "RA"))
        block = rng.normal(0.0, noise, size=(n_genes, len(controls)))
        data[:, controls] += block
        data[:, cases] += rng.permuted(block, axis=1)

    if planted:
        female_ra = ((phenotypes["Sex"] == "F") & (phenotypes["Disease State"] == "RA")).to_numpy()
        male_ra = ((phenotypes["Sex"] == "M") & (phenotypes["Disease State"] == "RA")).to_numpy()
        data[0:10, female_ra] += shift
        data[10:20, male_ra] -= shift
        data[20:25, female_ra | male_ra] += shift

    frame = pd.DataFrame(data, columns=phenotypes["Sample"].tolist())
    frame.insert(0, "gene", [f"G{i:03d}" for i in range(n_genes)])
    return frame


@pytest.fixture
def phenotype_frame():
    return generate_phenotype_frame()


@pytest.fixture
def expression_frame(phenotype_frame):
    return generate_expression_frame(phenotype_frame)


@pytest.fixture
def expression_csv(tmp_path, expression_frame):
    path = tmp_path / "expression.csv"
    expression_frame.to_csv(path, index=False)
    return path


@pytest.fixture
def phenotype_csv(tmp_path, phenotype_frame):
    path = tmp_path / "phenotype.csv"
    phenotype_frame.to_csv(path, index=False)
    return path


@pytest.fixture
def annotated(expression_csv, phenotype_csv):
    """Matched expression + phenotypes for the planted study."""
    return match_samples(load_expression(expression_csv), load_phenotypes(phenotype_csv))


@pytest.fixture
def null_annotated(tmp_path, phenotype_frame, phenotype_csv):
    """Same design without any planted effect."""
    path = tmp_path / "expression_null.csv"
    generate_expression_frame(phenotype_frame, planted=False, seed=7).to_csv(path, index=False)
    return match_samples(load_expression(path), load_phenotypes(phenotype_csv))
