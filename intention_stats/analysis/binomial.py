"""
Binomial tests of hit counts against a fixed probability.

Upper tails are summed with a term-to-term recurrence starting at the
observed count, so large n never underflows through repeated log-PMF
evaluation.
"""

import math
from typing import Optional

import numpy as np

from ..core.numeric import clamp_p, inv_norm, one_sided_p, two_sided_p
from .statistics import StatisticalResult, make_result

# Relative tolerance for "as or less likely than observed"
_PMF_TIE_TOLERANCE = 1e-7


def binom_pmf(k: int, n: int, p: float = 0.5) -> float:
    """P(X = k) for X ~ Binomial(n, p)."""
    if k < 0 or k > n:
        return 0.0
    if p <= 0.0:
        return 1.0 if k == 0 else 0.0
    if p >= 1.0:
        return 1.0 if k == n else 0.0
    log_pmf = (math.lgamma(n + 1) - math.lgamma(k + 1) - math.lgamma(n - k + 1)
               + k * math.log(p) + (n - k) * math.log(1 - p))
    return math.exp(log_pmf)


def binom_one_sided_p(k: int, n: int, p: float = 0.5) -> float:
    """
    Exact upper-tail probability P(X >= k).

    Above the mean the tail is summed forward from k; at or below it the
    complement P(X <= k - 1) is summed backward from k - 1, which keeps
    every sum on the short side of the distribution.
    """
    if k <= 0:
        return 1.0
    if k > n:
        return 0.0
    if p <= 0.0:
        return 0.0
    if p >= 1.0:
        return 1.0

    ratio = p / (1 - p)
    if k > n * p:
        term = binom_pmf(k, n, p)
        total = term
        for j in range(k, n):
            term *= (n - j) / (j + 1) * ratio
            total += term
            if term < total * 1e-17:
                break
        return clamp_p(total)

    term = binom_pmf(k - 1, n, p)
    lower = term
    for j in range(k - 1, 0, -1):
        term *= j / (n - j + 1) / ratio
        lower += term
        if term < lower * 1e-17:
            break
    return clamp_p(1.0 - lower)


def _log_pmf_array(n: int, p: float) -> np.ndarray:
    """log P(X = j) for j = 0..n via cumulative log-factorials."""
    log_fact = np.concatenate(([0.0], np.cumsum(np.log(np.arange(1, n + 1, dtype=float)))))
    j = np.arange(n + 1, dtype=float)
    return (log_fact[n] - log_fact - log_fact[::-1]
            + j * math.log(p) + (n - j) * math.log(1 - p))


def binom_z(k: int, n: int, p: float = 0.5) -> float:
    """Normal-approximation z of k hits in n trials against p."""
    if n <= 0:
        return 0.0
    sd = math.sqrt(n * p * (1 - p))
    if sd == 0:
        return 0.0
    return (k - n * p) / sd


def binom_two_sided_p(k: int, n: int, p: float = 0.5, method: str = 'exact') -> float:
    """
    Two-sided binomial p-value.

    Args:
        k: Observed hits
        n: Trials
        p: Null probability
        method: 'exact' (sum of outcomes no more likely than k) or 'normal'

    Returns:
        p-value in [0, 1]
    """
    if method not in ('exact', 'normal'):
        raise ValueError(f"Unknown method: {method}")
    if n <= 0 or k < 0 or k > n:
        return 1.0
    if method == 'normal':
        return two_sided_p(binom_z(k, n, p))
    if p <= 0.0 or p >= 1.0:
        return 1.0 if binom_pmf(k, n, p) == 1.0 else 0.0

    log_pmf = _log_pmf_array(n, p)
    cutoff = log_pmf[k] + math.log1p(_PMF_TIE_TOLERANCE)
    return clamp_p(float(np.sum(np.exp(log_pmf[log_pmf <= cutoff]))))


def binomial_test(
    k: int,
    n: int,
    p: float = 0.5,
    alternative: str = 'greater',
    alpha: float = 0.05,
) -> Optional[StatisticalResult]:
    """
    Exact binomial test of k hits in n trials.

    Args:
        alternative: 'greater' (upper tail) or 'two-sided'

    Returns:
        StatisticalResult with the normal z as statistic, or None for n = 0
    """
    if n <= 0:
        return None
    if alternative == 'greater':
        p_value = binom_one_sided_p(k, n, p)
    elif alternative == 'two-sided':
        p_value = binom_two_sided_p(k, n, p)
    else:
        raise ValueError(f"Unknown alternative: {alternative}")

    return make_result(
        'binomial_exact', binom_z(k, n, p), p_value, alpha,
        n=n,
        effect_size=k / n - p,
        effect_size_name='rate_minus_null',
        extras={'hits': k, 'p0': p, 'alternative': alternative,
                'normal_p': one_sided_p(binom_z(k, n, p)) if alternative == 'greater'
                else two_sided_p(binom_z(k, n, p))},
    )


def min_hits_for_significance(n: int, p: float = 0.5, alpha: float = 0.05) -> Optional[int]:
    """
    Smallest hit count whose exact upper-tail p is below alpha.

    Scans upward from ceil(n * p). Returns None when even n hits is not
    significant (very small n).
    """
    if n <= 0 or not 0.0 < p < 1.0:
        return None
    start = int(math.ceil(n * p))
    tail = np.cumsum(np.exp(_log_pmf_array(n, p))[::-1])[::-1]
    for k in range(start, n + 1):
        if tail[k] < alpha:
            return k
    return None


def required_hits_normal(n: int, alpha: float = 0.05, p: float = 0.5) -> int:
    """One-sided normal-approximation hit threshold: ceil(np + z_(1-alpha) * sd)."""
    if n <= 0:
        return 0
    z = inv_norm(1 - alpha)
    return int(math.ceil(n * p + z * math.sqrt(n * p * (1 - p))))
