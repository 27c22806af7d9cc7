"""
Sex-stratified differential expression (limma-style moderated t-test).

For one sex stratum, every gene is fit with the same two-group design:

    log2(expression) ~ 0 + control + rheumatoid_arthritis

The contrast (RA − control) is the log2 fold change. Residual variances are
shrunk toward a common prior estimated across genes (empirical Bayes), giving
moderated t-statistics that behave well with a handful of samples per group.
P-values are Benjamini-Hochberg adjusted across all tested genes.

A gene is a DEG when both strict filters hold:
    adjustedPValue < adjpval   and   |log2FoldChange| > logfc

References:
    - Smyth (2004) Statistical Applications in Genetics and Molecular Biology 3:3
    - Ritchie et al. (2015) Nucleic Acids Research 43(7):e47 (limma)
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field
from typing import Literal, Mapping

import numpy as np
import pandas as pd
from numpy.typing import NDArray
from scipy import stats as scipy_stats

from sexdeg.core.errors import InsufficientDataError
from sexdeg.io.phenotype import CASE, CONTROL, SEXES
from sexdeg.stats.empirical_bayes import fit_f_dist, squeeze_var
from sexdeg.stats.matching import AnnotatedExpression

__all__ = [
    'DEFAULT_LOGFC',
    'DEFAULT_ADJPVAL',
    'DEGResult',
    'fdr_correction',
    'fit_two_group_model',
    'run_sex_differential',
    'summarize_degs',
    'SUMMARY_ROWS',
]

logger = logging.getLogger(__name__)

DEFAULT_LOGFC = 0.5
DEFAULT_ADJPVAL = 0.05

# Design column order; the contrast is GROUPS[1] - GROUPS[0]
GROUPS = (CONTROL, CASE)
CONTRAST = np.array([-1.0, 1.0])

DEG_COLUMNS = ['gene_symbol', 'log2FoldChange', 'adjustedPValue', 'direction']

SUMMARY_ROWS = [
    'samples',
    'controls',
    'cases',
    'genes_tested',
    'degs',
    'up',
    'down',
    'shared_degs',
]


@dataclass
class DEGResult:
    """
    Differential expression result for one sex stratum.

    Attributes:
        sex: Stratum ("female" / "male")
        table: Passing genes only (gene_symbol, log2FoldChange,
            adjustedPValue, direction), sorted by adjusted p-value
        all_genes: Statistics for every gene in the matrix, in matrix order
        logfc: Effect-size threshold used
        adjpval: Adjusted p-value threshold used
        n_control: Control samples in the fit
        n_case: Rheumatoid arthritis samples in the fit
        d0: Prior degrees of freedom (inf = complete pooling, 0 = no moderation)
        s0_sq: Prior variance
    """

    sex: str
    table: pd.DataFrame
    all_genes: pd.DataFrame
    logfc: float
    adjpval: float
    n_control: int
    n_case: int
    d0: float = 0.0
    s0_sq: float = np.nan
    dropped_samples: list[str] = field(default_factory=list)

    @property
    def genes(self) -> list[str]:
        """DEG symbols in table order (may repeat for multi-probe symbols)."""
        return self.table['gene_symbol'].tolist()

    @property
    def n_up(self) -> int:
        return int((self.table['direction'] == 'up').sum())

    @property
    def n_down(self) -> int:
        return int((self.table['direction'] == 'down').sum())

    @property
    def n_tested(self) -> int:
        return int(self.all_genes['PValue'].notna().sum())

    def __len__(self) -> int:
        return len(self.table)

    def to_dict(self) -> dict:
        """Plain-dict summary for JSON export."""
        return {
            'sex': self.sex,
            'logfc': self.logfc,
            'adjpval': self.adjpval,
            'n_control': self.n_control,
            'n_case': self.n_case,
            'n_tested': self.n_tested,
            'n_degs': len(self),
            'n_up': self.n_up,
            'n_down': self.n_down,
            'prior_df': None if not np.isfinite(self.d0) else float(self.d0),
            'prior_var': None if not np.isfinite(self.s0_sq) else float(self.s0_sq),
        }


def fdr_correction(
    pvalues: NDArray[np.float64],
    method: Literal["BH", "BY", "bonferroni"] = "BH",
    alpha: float = 0.05,
) -> NDArray[np.float64]:
    """
    Apply multiple testing correction, ignoring NaN p-values.

    Args:
        pvalues: Raw p-values (NaN for untested genes)
        method: "BH" (Benjamini-Hochberg), "BY" or "bonferroni"
        alpha: Family-wise level passed to statsmodels

    Returns:
        Adjusted p-values, NaN where the input was NaN
    """
    from statsmodels.stats.multitest import multipletests

    pvalues = np.asarray(pvalues, dtype=float)
    valid_mask = ~np.isnan(pvalues)
    adj_pvals = np.full_like(pvalues, np.nan)

    if not np.any(valid_mask):
        return adj_pvals

    method_map = {"BH": "fdr_bh", "BY": "fdr_by", "bonferroni": "bonferroni"}
    _, adj_pvals[valid_mask], _, _ = multipletests(
        pvalues[valid_mask],
        alpha=alpha,
        method=method_map.get(method, method),
    )

    return adj_pvals


def _design_matrix(groups: NDArray) -> NDArray[np.float64]:
    """No-intercept indicator design, one column per level of GROUPS."""
    return np.column_stack([(groups == level).astype(float) for level in GROUPS])


def fit_two_group_model(
    data: NDArray[np.float64],
    groups: NDArray,
) -> dict[str, NDArray[np.float64]]:
    """
    Fit the no-intercept two-group linear model to every gene.

    Genes without missing values share one vectorised OLS solve:
        β = Y X (XᵀX)⁻¹
    Genes with missing values are fit on their own observed samples, with
    their own residual degrees of freedom. A gene whose observed samples no
    longer cover both groups gets NaN statistics.

    Args:
        data: Expression (n_genes, n_samples), log2 scale
        groups: Canonical status per sample (CONTROL or CASE)

    Returns:
        Dict of per-gene arrays: coef (contrast estimate), sigma2 (residual
        variance), df (residual df), stdev_unscaled (sqrt(cᵀ(XᵀX)⁻¹c)),
        n_obs
    """
    n_genes, n_samples = data.shape
    X = _design_matrix(np.asarray(groups))
    n_params = X.shape[1]

    coef = np.full(n_genes, np.nan)
    sigma2 = np.full(n_genes, np.nan)
    df = np.zeros(n_genes)
    stdev_unscaled = np.full(n_genes, np.nan)

    nan_mask = np.isnan(data)
    n_obs = (~nan_mask).sum(axis=1)
    complete = n_obs == n_samples

    # Complete genes: one shared solve
    if complete.any():
        XtX_inv = np.linalg.inv(X.T @ X)
        Y = data[complete]
        beta = Y @ X @ XtX_inv
        residuals = Y - beta @ X.T
        df_full = n_samples - n_params
        coef[complete] = beta @ CONTRAST
        df[complete] = df_full
        if df_full > 0:
            sigma2[complete] = np.sum(residuals ** 2, axis=1) / df_full
        stdev_unscaled[complete] = np.sqrt(CONTRAST @ XtX_inv @ CONTRAST)

    # Genes with missing values: fit on observed samples only
    for i in np.flatnonzero(~complete):
        observed = ~nan_mask[i]
        X_i = X[observed]
        if np.linalg.matrix_rank(X_i) < n_params:
            continue
        y_i = data[i, observed]
        XtX_inv_i = np.linalg.inv(X_i.T @ X_i)
        beta_i = XtX_inv_i @ X_i.T @ y_i
        df_i = int(observed.sum()) - n_params
        coef[i] = beta_i @ CONTRAST
        df[i] = df_i
        if df_i > 0:
            sigma2[i] = float(np.sum((y_i - X_i @ beta_i) ** 2) / df_i)
        stdev_unscaled[i] = np.sqrt(CONTRAST @ XtX_inv_i @ CONTRAST)

    return {
        'coef': coef,
        'sigma2': sigma2,
        'df': df,
        'stdev_unscaled': stdev_unscaled,
        'n_obs': n_obs,
    }


def run_sex_differential(
    annotated: AnnotatedExpression,
    sex: str,
    logfc: float = DEFAULT_LOGFC,
    adjpval: float = DEFAULT_ADJPVAL,
) -> DEGResult:
    """
    Differential expression (RA vs control) within one sex stratum.

    Steps:
        1. Restrict to samples of `sex`; fewer than 2 is an error
        2. Keep samples with a canonical status; both levels must remain
        3. Fit the two-group model per gene
        4. Empirical Bayes variance moderation (disabled with a warning
           when fewer than 3 genes have a usable variance)
        5. Moderated t, two-sided p-values, BH adjustment
        6. Strict filters on adjusted p-value and |log2 fold change|

    Args:
        annotated: Matched expression + phenotypes
        sex: "female" or "male"
        logfc: Strict lower bound on |log2FoldChange|
        adjpval: Strict upper bound on the adjusted p-value

    Returns:
        DEGResult; deterministic for identical inputs

    Raises:
        InsufficientDataError: Fewer than 2 samples in the stratum, a missing
            group, or no residual degrees of freedom
        ValueError: Negative thresholds
    """
    if logfc < 0:
        raise ValueError(f"logfc must be non-negative, got {logfc}")
    if not 0 < adjpval <= 1:
        raise ValueError(f"adjpval must be in (0, 1], got {adjpval}")

    stratum = annotated.stratum(sex)
    if stratum.n_samples < 2:
        raise InsufficientDataError(
            f"Insufficient data: {stratum.n_samples} {sex} sample(s), need at least 2"
        )

    status = stratum.sample_metadata['status'].to_numpy()
    canonical = np.isin(status, GROUPS)
    dropped = [str(s) for s in stratum.sample_ids[~canonical]]
    if dropped:
        logger.info(
            f"{sex}: excluding {len(dropped)} samples with status other than "
            f"'{CONTROL}' / '{CASE}'"
        )
        stratum = stratum.select_samples(canonical)
        status = status[canonical]

    n_control = int(np.sum(status == CONTROL))
    n_case = int(np.sum(status == CASE))
    if n_control == 0 or n_case == 0:
        raise InsufficientDataError(
            f"Insufficient data: {sex} stratum has {n_control} control and "
            f"{n_case} '{CASE}' samples; both groups are required"
        )
    if n_control + n_case < 3:
        raise InsufficientDataError(
            f"Insufficient data: {sex} stratum has {n_control + n_case} samples, "
            "leaving no residual degrees of freedom"
        )

    fit = fit_two_group_model(stratum.data, status)
    sigma2 = fit['sigma2']
    df_residual = fit['df']

    usable = np.isfinite(sigma2) & (sigma2 > 0) & (df_residual > 0)
    if usable.sum() >= 3:
        d0, s0_sq = fit_f_dist(sigma2[usable], df_residual[usable])
        s2_post, df_total = squeeze_var(sigma2, df_residual, d0, s0_sq)
        # limma caps total df at the pooled residual df
        df_total = np.minimum(df_total, float(np.sum(df_residual[usable])))
        logger.debug(f"{sex}: empirical Bayes prior d0={d0:.3g}, s0²={s0_sq:.3g}")
    else:
        warnings.warn(
            f"Only {int(usable.sum())} genes with a usable variance in the {sex} stratum; "
            "empirical Bayes moderation disabled (ordinary t-statistics)",
            UserWarning,
        )
        d0, s0_sq = 0.0, np.nan
        s2_post, df_total = sigma2, df_residual.astype(float)

    with np.errstate(divide='ignore', invalid='ignore'):
        se = np.sqrt(s2_post) * fit['stdev_unscaled']
        t_stat = fit['coef'] / se
    testable = np.isfinite(t_stat) & (df_total > 0)

    p_values = np.full(len(t_stat), np.nan)
    finite_df = testable & np.isfinite(df_total)
    p_values[finite_df] = 2 * scipy_stats.t.sf(np.abs(t_stat[finite_df]), df_total[finite_df])
    infinite_df = testable & ~np.isfinite(df_total)
    p_values[infinite_df] = 2 * scipy_stats.norm.sf(np.abs(t_stat[infinite_df]))

    adj_p = fdr_correction(p_values, method="BH")

    with warnings.catch_warnings():
        warnings.simplefilter("ignore", category=RuntimeWarning)
        ave_expr = np.nanmean(stratum.data, axis=1)

    lfc = fit['coef']
    significant = (
        np.nan_to_num(adj_p, nan=np.inf) < adjpval
    ) & (np.nan_to_num(np.abs(lfc), nan=-np.inf) > logfc)
    direction = np.where(lfc > 0, 'up', 'down')

    all_genes = pd.DataFrame({
        'gene_symbol': np.asarray(stratum.feature_ids, dtype=object),
        'log2FoldChange': lfc,
        'AveExpr': ave_expr,
        't': np.where(testable, t_stat, np.nan),
        'PValue': p_values,
        'adjustedPValue': adj_p,
        'df_total': df_total,
        'direction': np.where(significant, direction, None),
        'significant': significant,
    })

    table = (
        all_genes.loc[significant, DEG_COLUMNS]
        .sort_values('adjustedPValue', kind='mergesort')
        .reset_index(drop=True)
    )

    logger.info(
        f"{sex}: {len(table)} DEGs ({int((table['direction'] == 'up').sum())} up, "
        f"{int((table['direction'] == 'down').sum())} down) among {int(testable.sum())} "
        f"tested genes; {n_control} control vs {n_case} RA"
    )

    return DEGResult(
        sex=sex,
        table=table,
        all_genes=all_genes,
        logfc=logfc,
        adjpval=adjpval,
        n_control=n_control,
        n_case=n_case,
        d0=float(d0),
        s0_sq=float(s0_sq),
        dropped_samples=dropped,
    )


def summarize_degs(
    results: Mapping[str, DEGResult],
    annotated: AnnotatedExpression | None = None,
) -> pd.DataFrame:
    """
    Cross-sex summary table.

    Rows (SUMMARY_ROWS): samples, controls, cases, genes_tested, degs, up,
    down, shared_degs. Columns: one per sex in SEXES. A sex whose analysis
    is missing (e.g. it failed) gets NaN except for the sample count when
    `annotated` is given.

    Example:
        >>> summarize_degs({'female': f_res, 'male': m_res}, annotated)
                      female  male
        samples           10    10
        controls           5     5
        ...
    """
    gene_sets = {sex: set(res.genes) for sex, res in results.items()}
    shared = set.intersection(*gene_sets.values()) if len(gene_sets) == len(SEXES) else set()

    columns = {}
    for sex in SEXES:
        res = results.get(sex)
        col: dict[str, float] = dict.fromkeys(SUMMARY_ROWS, np.nan)
        if annotated is not None:
            col['samples'] = int((annotated.phenotypes['gender'] == sex).sum())
        if res is not None:
            col['samples'] = res.n_control + res.n_case + len(res.dropped_samples)
            col['controls'] = res.n_control
            col['cases'] = res.n_case
            col['genes_tested'] = res.n_tested
            col['degs'] = len(res)
            col['up'] = res.n_up
            col['down'] = res.n_down
            col['shared_degs'] = sum(1 for g in set(res.genes) if g in shared)
        columns[sex] = col

    summary = pd.DataFrame(columns, index=SUMMARY_ROWS)
    summary.index.name = 'metric'
    if not summary.isna().any().any():
        summary = summary.astype(int)
    return summary
