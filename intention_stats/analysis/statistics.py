"""
Hypothesis tests for intention experiments.

Provides functions for:
- Confidence intervals (parametric and bootstrap)
- One-sample, paired and Welch two-sample t-tests
- Two-proportion z-test and 2x2 chi-square independence test
- Sign-flip permutation test for paired differences

Every test returns an immutable StatisticalResult. Insufficient data gives
None; a degenerate statistic (zero variance or denominator) gives
statistic 0 and p 1.
"""

import math
from dataclasses import dataclass, asdict, field
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np

from ..core.config import DEFAULT_SEED
from ..core.numeric import (
    chi_square_sf,
    clamp_p,
    inv_norm,
    t_critical,
    two_sided_p,
    two_sided_t_p,
)

# Upper bound on the size of one resampling matrix (rows * n)
_RESAMPLE_CHUNK_CELLS = 1_000_000


@dataclass(frozen=True)
class StatisticalResult:
    """Output of any hypothesis test."""
    test_name: str
    statistic: float
    p_value: float
    significant: bool
    alpha: float = 0.05
    df: Optional[float] = None
    n: Optional[int] = None
    effect_size: Optional[float] = None
    effect_size_name: Optional[str] = None
    extras: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def make_result(test_name: str, statistic: float, p_value: float, alpha: float = 0.05,
                **kwargs) -> StatisticalResult:
    """Build a result, clamping p and deriving the significance flag."""
    p = clamp_p(p_value)
    return StatisticalResult(
        test_name=test_name,
        statistic=float(statistic),
        p_value=p,
        significant=p < alpha,
        alpha=alpha,
        **kwargs,
    )


def degenerate_result(test_name: str, alpha: float = 0.05, **kwargs) -> StatisticalResult:
    """The defined 'no evidence' outcome: statistic 0, p 1."""
    return make_result(test_name, 0.0, 1.0, alpha, **kwargs)


@dataclass
class ConfidenceInterval:
    """Result of a confidence interval calculation."""
    mean: float
    ci_lower: float
    ci_upper: float
    std: float
    n: int
    confidence: float
    method: str = 't'

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _critical_value(df: float, confidence: float) -> float:
    if abs(confidence - 0.95) < 1e-12:
        return t_critical(df, two_tailed=True)
    return inv_norm(1 - (1 - confidence) / 2)


def compute_confidence_interval(
    values: Sequence[float],
    confidence: float = 0.95
) -> ConfidenceInterval:
    """
    Compute a confidence interval using the t-distribution.

    Args:
        values: Sample values
        confidence: Confidence level (default 0.95 for 95% CI); levels other
                    than 0.95 use the normal critical value

    Returns:
        ConfidenceInterval with mean, bounds, std, and sample size
    """
    n = len(values)
    if n == 0:
        return ConfidenceInterval(
            mean=float('nan'),
            ci_lower=float('nan'),
            ci_upper=float('nan'),
            std=float('nan'),
            n=0,
            confidence=confidence
        )

    if n == 1:
        val = float(values[0])
        return ConfidenceInterval(
            mean=val,
            ci_lower=val,
            ci_upper=val,
            std=0.0,
            n=1,
            confidence=confidence
        )

    arr = np.asarray(values, dtype=float)
    mean = float(np.mean(arr))
    std = float(np.std(arr, ddof=1))
    margin = _critical_value(n - 1, confidence) * std / math.sqrt(n)

    return ConfidenceInterval(
        mean=mean,
        ci_lower=mean - margin,
        ci_upper=mean + margin,
        std=std,
        n=n,
        confidence=confidence
    )


def _resample_rows(n: int, total: int) -> List[int]:
    """Split `total` resamples into chunks of bounded matrix size."""
    rows = max(1, _RESAMPLE_CHUNK_CELLS // max(n, 1))
    chunks = []
    remaining = total
    while remaining > 0:
        chunks.append(min(rows, remaining))
        remaining -= rows
    return chunks


def bootstrap_ci(
    values: Sequence[float],
    n_bootstrap: int = 1000,
    confidence: float = 0.95,
    seed: int = DEFAULT_SEED,
    max_n: Optional[int] = None,
    statistic: Callable[..., np.ndarray] = np.mean,
) -> Optional[ConfidenceInterval]:
    """
    Percentile bootstrap confidence interval.

    Resamples with replacement `n_bootstrap` times from a generator seeded
    with `seed`, so identical inputs give identical bounds.

    Args:
        values: Sample values
        n_bootstrap: Number of bootstrap samples
        confidence: Confidence level (0.95 reports the 2.5/97.5 percentiles)
        seed: Random seed
        max_n: Skip (return None) when the sample is larger than this
        statistic: Reducer applied along axis 1 of the resample matrix

    Returns:
        ConfidenceInterval, or None with fewer than 2 values or above max_n
    """
    n = len(values)
    if n < 2 or (max_n is not None and n > max_n):
        return None

    rng = np.random.default_rng(seed)
    arr = np.asarray(values, dtype=float)

    estimates = []
    for rows in _resample_rows(n, n_bootstrap):
        idx = rng.integers(0, n, size=(rows, n))
        estimates.append(statistic(arr[idx], axis=1))
    boot = np.concatenate(estimates)

    tail = 100 * (1 - confidence) / 2
    return ConfidenceInterval(
        mean=float(statistic(arr)),
        ci_lower=float(np.percentile(boot, tail)),
        ci_upper=float(np.percentile(boot, 100 - tail)),
        std=float(np.std(boot, ddof=1)),
        n=n,
        confidence=confidence,
        method='bootstrap',
    )


def one_sample_t_test(
    values: Sequence[float],
    mu: float = 0.0,
    alpha: float = 0.05,
    test_name: str = 'one_sample_t',
) -> Optional[StatisticalResult]:
    """
    Two-sided one-sample t-test of mean(values) against mu.

    Returns None for fewer than 2 values.
    """
    n = len(values)
    if n < 2:
        return None

    arr = np.asarray(values, dtype=float)
    mean = float(np.mean(arr))
    sd = float(np.std(arr, ddof=1))
    se = sd / math.sqrt(n)
    df = n - 1
    extras = {'mean': mean, 'sd': sd, 'se': se, 'mu': mu}

    if se == 0:
        return degenerate_result(test_name, alpha, df=df, n=n, extras=extras)

    t = (mean - mu) / se
    return make_result(
        test_name, t, two_sided_t_p(t, df), alpha,
        df=df, n=n,
        effect_size=(mean - mu) / sd,
        effect_size_name='cohens_d',
        extras=extras,
    )


def paired_t_test(
    a: Sequence[float],
    b: Sequence[float],
    alpha: float = 0.05,
) -> Optional[StatisticalResult]:
    """
    Paired t-test on a[i] - b[i].

    Raises:
        ValueError: If the samples are not the same length
    """
    if len(a) != len(b):
        raise ValueError(f"Paired samples differ in length: {len(a)} vs {len(b)}")
    diffs = [x - y for x, y in zip(a, b)]
    return one_sample_t_test(diffs, 0.0, alpha, test_name='paired_t')


def cohens_d(a: Sequence[float], b: Sequence[float]) -> float:
    """Cohen's d using the average of the two sample variances."""
    if len(a) < 2 or len(b) < 2:
        return 0.0
    pooled_std = math.sqrt((np.var(a, ddof=1) + np.var(b, ddof=1)) / 2)
    if pooled_std == 0:
        return 0.0
    return float((np.mean(a) - np.mean(b)) / pooled_std)


def interpret_effect_size(d: Optional[float]) -> str:
    """Conventional label for |d|."""
    if d is None:
        return 'undefined'
    d = abs(d)
    if d < 0.2:
        return 'negligible'
    if d < 0.5:
        return 'small'
    if d < 0.8:
        return 'medium'
    return 'large'


def welch_t_test(
    group_a: Sequence[float],
    group_b: Sequence[float],
    alpha: float = 0.05,
) -> Optional[StatisticalResult]:
    """
    Welch's t-test (unequal variance two-sample t-test).

    Degrees of freedom come from the Welch-Satterthwaite formula, floored to
    an integer before the p-value lookup.

    Returns None when either group has fewer than 2 values.
    """
    n_a, n_b = len(group_a), len(group_b)
    if n_a < 2 or n_b < 2:
        return None

    a = np.asarray(group_a, dtype=float)
    b = np.asarray(group_b, dtype=float)
    mean_a, mean_b = float(np.mean(a)), float(np.mean(b))
    var_a, var_b = float(np.var(a, ddof=1)), float(np.var(b, ddof=1))
    extras = {
        'mean_a': mean_a, 'mean_b': mean_b,
        'sd_a': math.sqrt(var_a), 'sd_b': math.sqrt(var_b),
        'n_a': n_a, 'n_b': n_b,
    }

    se = math.sqrt(var_a / n_a + var_b / n_b)
    if se == 0:
        return degenerate_result('welch_t', alpha, df=float(n_a + n_b - 2),
                                 n=n_a + n_b, extras=extras)

    t = (mean_a - mean_b) / se

    num = (var_a / n_a + var_b / n_b) ** 2
    denom = (var_a / n_a) ** 2 / (n_a - 1) + (var_b / n_b) ** 2 / (n_b - 1)
    df_raw = num / denom if denom > 0 else n_a + n_b - 2
    df = float(max(1, math.floor(df_raw)))
    extras['se'] = se
    extras['df_raw'] = df_raw

    return make_result(
        'welch_t', t, two_sided_t_p(t, df), alpha,
        df=df, n=n_a + n_b,
        effect_size=cohens_d(a, b),
        effect_size_name='cohens_d',
        extras=extras,
    )


def two_proportion_z_test(
    hits_a: int,
    n_a: int,
    hits_b: int,
    n_b: int,
    alpha: float = 0.05,
) -> Optional[StatisticalResult]:
    """
    Pooled-variance two-proportion z-test.

    z = (p_a - p_b) / sqrt(p(1 - p)(1/n_a + 1/n_b)) with p the pooled rate.
    Returns None when either sample is empty.
    """
    if n_a <= 0 or n_b <= 0:
        return None

    p_a = hits_a / n_a
    p_b = hits_b / n_b
    pooled = (hits_a + hits_b) / (n_a + n_b)
    extras = {'p_a': p_a, 'p_b': p_b, 'pooled': pooled,
              'hits_a': hits_a, 'hits_b': hits_b, 'n_a': n_a, 'n_b': n_b}

    se = math.sqrt(pooled * (1 - pooled) * (1 / n_a + 1 / n_b))
    if se == 0:
        return degenerate_result('two_proportion_z', alpha, n=n_a + n_b,
                                 effect_size=p_a - p_b, effect_size_name='rate_difference',
                                 extras=extras)

    z = (p_a - p_b) / se
    return make_result(
        'two_proportion_z', z, two_sided_p(z), alpha,
        n=n_a + n_b,
        effect_size=p_a - p_b,
        effect_size_name='rate_difference',
        extras=extras,
    )


def chi_square_2x2(
    a: int,
    b: int,
    c: int,
    d: int,
    alpha: float = 0.05,
    min_total: int = 50,
) -> Optional[StatisticalResult]:
    """
    Chi-square test of independence on the table [[a, b], [c, d]].

    Expected cell counts are row_total * col_total / N; 1 degree of freedom,
    no continuity correction.

    Returns None when N < min_total.
    """
    total = a + b + c + d
    if total < min_total:
        return None

    rows = (a + b, c + d)
    cols = (a + c, b + d)
    observed = ((a, b), (c, d))
    extras = {'table': [[a, b], [c, d]], 'total': total}

    if 0 in rows or 0 in cols:
        return degenerate_result('chi_square_2x2', alpha, df=1, n=total, extras=extras)

    chi2 = 0.0
    for i in range(2):
        for j in range(2):
            expected = rows[i] * cols[j] / total
            chi2 += (observed[i][j] - expected) ** 2 / expected

    phi = (a * d - b * c) / math.sqrt(rows[0] * rows[1] * cols[0] * cols[1])
    return make_result(
        'chi_square_2x2', chi2, chi_square_sf(chi2, 1), alpha,
        df=1, n=total,
        effect_size=phi,
        effect_size_name='phi',
        extras=extras,
    )


def sign_flip_permutation_test(
    differences: Sequence[float],
    n_permutations: int = 10000,
    seed: int = DEFAULT_SEED,
    alpha: float = 0.05,
    max_n: Optional[int] = None,
) -> Optional[StatisticalResult]:
    """
    Permutation test for paired differences by random sign flips.

    The p-value is the fraction of resamples whose |mean| is at least the
    observed |mean|.

    Returns None with fewer than 2 differences or above max_n.
    """
    n = len(differences)
    if n < 2 or (max_n is not None and n > max_n):
        return None

    rng = np.random.default_rng(seed)
    arr = np.asarray(differences, dtype=float)
    observed = abs(float(np.mean(arr)))
    # Tolerance so exact ties are not lost to rounding
    threshold = observed - 1e-12

    extreme = 0
    for rows in _resample_rows(n, n_permutations):
        signs = rng.integers(0, 2, size=(rows, n)) * 2 - 1
        means = np.abs((signs * arr).mean(axis=1))
        extreme += int(np.count_nonzero(means >= threshold))

    p = extreme / n_permutations
    return make_result(
        'sign_flip_permutation', float(np.mean(arr)), p, alpha,
        n=n,
        extras={'n_permutations': n_permutations, 'extreme_count': extreme},
    )
