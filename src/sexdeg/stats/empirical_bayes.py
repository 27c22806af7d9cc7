"""
Empirical Bayes variance moderation (limma-style moderated t-statistics).

With a handful of samples per group, gene-wise residual variances are
unstable: a gene can look significant only because its variance happened to
be estimated near zero. limma's remedy pools information across genes. The
sample variances are modelled as scaled chi-square draws around a common
prior, the prior (d0, s0²) is estimated from all genes, and every gene's
variance is shrunk toward it.

Functions:
    trigamma_inverse: Solve trigamma(y) = x
    fit_f_dist: Method-of-moments estimate of the prior (limma fitFDist)
    squeeze_var: Posterior variances (limma squeezeVar)

References:
    Smyth (2004) Statistical Applications in Genetics and Molecular Biology 3:3
"""

from __future__ import annotations

import logging

import numpy as np
from numpy.typing import NDArray
from scipy.special import digamma, polygamma

__all__ = ['trigamma_inverse', 'fit_f_dist', 'squeeze_var']

logger = logging.getLogger(__name__)


def trigamma_inverse(x: float, tol: float = 1e-8, max_iter: int = 50) -> float:
    """
    Compute y such that trigamma(y) = x.

    Newton iteration on 1/trigamma(y), which is convex and nearly linear,
    starting from y = 0.5 + 1/x (as limma's trigammaInverse).

    Args:
        x: Target trigamma value (positive)
        tol: Relative convergence tolerance
        max_iter: Maximum Newton iterations
    """
    if x <= 0:
        return np.inf
    if x > 1e7:
        return 1.0 / np.sqrt(x)
    if x < 1e-6:
        return 1.0 / x

    y = 0.5 + 1.0 / x
    for _ in range(max_iter):
        tri = polygamma(1, y)
        dif = tri * (1.0 - tri / x) / polygamma(2, y)
        y = y + dif
        if -dif / y < tol:
            break
    else:
        logger.warning("trigamma_inverse did not converge after %d iterations", max_iter)

    return float(y)


def fit_f_dist(
    sigma2: NDArray[np.float64],
    df: float | NDArray[np.float64],
) -> tuple[float, float]:
    """
    Estimate the prior degrees of freedom d0 and scale s0².

    Algorithm (limma fitFDist, no covariate):
        1. Keep finite variances with positive df; floor at 1e-5 × median
        2. e = log(s²) - digamma(df/2) + log(df/2)
        3. evar = var(e) - mean(trigamma(df/2))
        4. evar > 0:  d0 = 2 × trigamma⁻¹(evar),
                      s0² = exp(mean(e) + digamma(d0/2) - log(d0/2))
           otherwise: d0 = inf, s0² = exp(mean(e))

    Args:
        sigma2: Residual variances (n_genes,)
        df: Residual degrees of freedom, scalar or per gene

    Returns:
        (d0, s0_sq); d0 may be np.inf (variances consistent with a single
        common value)
    """
    sigma2 = np.asarray(sigma2, dtype=float)
    df_arr = np.broadcast_to(np.asarray(df, dtype=float), sigma2.shape)

    ok = np.isfinite(sigma2) & (sigma2 > -1e-15) & np.isfinite(df_arr) & (df_arr > 1e-15)
    x = np.maximum(sigma2[ok], 0.0)
    d = df_arr[ok]
    n = x.size

    if n == 0:
        return np.inf, np.nan
    if n == 1:
        return 0.0, float(x[0])

    m = np.median(x)
    if m == 0:
        m = 1.0
    x = np.maximum(x, 1e-5 * m)

    half = d / 2.0
    e = np.log(x) - digamma(half) + np.log(half)
    emean = float(np.mean(e))
    evar = float(np.sum((e - emean) ** 2) / (n - 1))
    evar -= float(np.mean(polygamma(1, half)))

    if evar > 0:
        d0 = 2.0 * trigamma_inverse(evar)
        s0_sq = float(np.exp(emean + digamma(d0 / 2.0) - np.log(d0 / 2.0)))
    else:
        d0 = np.inf
        s0_sq = float(np.exp(emean))

    return float(d0), s0_sq


def squeeze_var(
    sigma2: NDArray[np.float64],
    df: float | NDArray[np.float64],
    d0: float,
    s0_sq: float,
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """
    Shrink residual variances toward the prior.

    Formula:
        s²_post = (d0 × s0² + df × s²) / (d0 + df)

    With d0 = inf every posterior equals s0² (complete pooling), and the
    total degrees of freedom are infinite.

    Returns:
        (s2_post, df_total), both arrays of shape (n_genes,)
    """
    sigma2 = np.asarray(sigma2, dtype=float)
    df_arr = np.broadcast_to(np.asarray(df, dtype=float), sigma2.shape).astype(float)

    if np.isinf(d0):
        s2_post = np.where(np.isfinite(sigma2), s0_sq, np.nan)
        return s2_post, np.full(sigma2.shape, np.inf)

    s2_post = (d0 * s0_sq + df_arr * sigma2) / (d0 + df_arr)
    return s2_post, d0 + df_arr
