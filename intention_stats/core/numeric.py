"""
Numeric primitives for the analysis engine.

Provides dependency-free implementations of:
- Error function (Abramowitz & Stegun 7.1.26) and the standard normal CDF
- Two-sided p-values from z and t statistics
- Student-t CDF (regularized incomplete beta) and critical-value lookup
- Chi-square CDF / upper tail (regularized incomplete gamma)
- Inverse normal CDF (Acklam)

Degenerate inputs never raise: a p-value function always returns a value
in [0, 1].
"""

import math
from typing import Optional


SQRT2 = math.sqrt(2.0)

# Continued-fraction / series controls
_MAX_ITER = 300
_EPS = 3.0e-14
_FPMIN = 1.0e-300


def erf(x: float) -> float:
    """
    Error function, Abramowitz and Stegun approximation 7.1.26.

    Maximum absolute error is about 1.5e-7 over the whole real line.
    """
    a1 = 0.254829592
    a2 = -0.284496736
    a3 = 1.421413741
    a4 = -1.453152027
    a5 = 1.061405429
    p = 0.3275911

    sign = 1.0 if x >= 0 else -1.0
    x = abs(x)

    t = 1.0 / (1.0 + p * x)
    y = 1.0 - (((((a5 * t + a4) * t) + a3) * t + a2) * t + a1) * t * math.exp(-x * x)

    return sign * y


def normal_cdf(z: float) -> float:
    """Standard normal cumulative distribution function."""
    return 0.5 * (1.0 + erf(z / SQRT2))


def clamp_p(p: float) -> float:
    """Clamp a probability into [0, 1]; NaN maps to 1 (no evidence)."""
    if p != p:
        return 1.0
    return min(1.0, max(0.0, p))


def two_sided_p(z: float) -> float:
    """Two-sided p-value for a standard normal statistic."""
    if z != z:
        return 1.0
    return clamp_p(2.0 * (1.0 - normal_cdf(abs(z))))


def one_sided_p(z: float) -> float:
    """Upper-tail p-value for a standard normal statistic."""
    if z != z:
        return 1.0
    return clamp_p(1.0 - normal_cdf(z))


def inv_norm(p: float) -> float:
    """
    Inverse of the standard normal CDF (Acklam's rational approximation).

    Args:
        p: Probability strictly between 0 and 1

    Returns:
        z such that normal_cdf(z) ~= p

    Raises:
        ValueError: If p is outside (0, 1)
    """
    if not 0.0 < p < 1.0:
        raise ValueError(f"inv_norm requires 0 < p < 1, got {p}")

    a = [-3.969683028665376e+01, 2.209460984245205e+02, -2.759285104469687e+02,
         1.383577518672690e+02, -3.066479806614716e+01, 2.506628277459239e+00]
    b = [-5.447609879822406e+01, 1.615858368580409e+02, -1.556989798598866e+02,
         6.680131188771972e+01, -1.328068155288572e+01]
    c = [-7.784894002430293e-03, -3.223964580411365e-01, -2.400758277161838e+00,
         -2.549732539343734e+00, 4.374664141464968e+00, 2.938163982698783e+00]
    d = [7.784695709041462e-03, 3.224671290700398e-01, 2.445134137142996e+00,
         3.754408661907416e+00]

    p_low = 0.02425
    p_high = 1 - p_low

    if p < p_low:
        q = math.sqrt(-2 * math.log(p))
        return ((((((c[0] * q + c[1]) * q + c[2]) * q + c[3]) * q + c[4]) * q + c[5]) /
                ((((d[0] * q + d[1]) * q + d[2]) * q + d[3]) * q + 1))
    if p > p_high:
        q = math.sqrt(-2 * math.log(1 - p))
        return -((((((c[0] * q + c[1]) * q + c[2]) * q + c[3]) * q + c[4]) * q + c[5]) /
                 ((((d[0] * q + d[1]) * q + d[2]) * q + d[3]) * q + 1))

    q = p - 0.5
    r = q * q
    return ((((((a[0] * r + a[1]) * r + a[2]) * r + a[3]) * r + a[4]) * r + a[5]) * q /
            (((((b[0] * r + b[1]) * r + b[2]) * r + b[3]) * r + b[4]) * r + 1))


# ---------------------------------------------------------------------------
# Student t
# ---------------------------------------------------------------------------

def _beta_continued_fraction(a: float, b: float, x: float) -> float:
    """Continued fraction for the incomplete beta function (modified Lentz)."""
    qab = a + b
    qap = a + 1.0
    qam = a - 1.0
    c = 1.0
    d = 1.0 - qab * x / qap
    if abs(d) < _FPMIN:
        d = _FPMIN
    d = 1.0 / d
    h = d

    for m in range(1, _MAX_ITER + 1):
        m2 = 2 * m
        aa = m * (b - m) * x / ((qam + m2) * (a + m2))
        d = 1.0 + aa * d
        if abs(d) < _FPMIN:
            d = _FPMIN
        c = 1.0 + aa / c
        if abs(c) < _FPMIN:
            c = _FPMIN
        d = 1.0 / d
        h *= d * c

        aa = -(a + m) * (qab + m) * x / ((a + m2) * (qap + m2))
        d = 1.0 + aa * d
        if abs(d) < _FPMIN:
            d = _FPMIN
        c = 1.0 + aa / c
        if abs(c) < _FPMIN:
            c = _FPMIN
        d = 1.0 / d
        delta = d * c
        h *= delta
        if abs(delta - 1.0) < _EPS:
            break

    return h


def regularized_beta(a: float, b: float, x: float) -> float:
    """Regularized incomplete beta function I_x(a, b)."""
    if x <= 0.0:
        return 0.0
    if x >= 1.0:
        return 1.0

    log_front = (math.lgamma(a + b) - math.lgamma(a) - math.lgamma(b)
                 + a * math.log(x) + b * math.log(1.0 - x))
    front = math.exp(log_front)

    # Use the symmetry relation where the continued fraction converges fastest
    if x < (a + 1.0) / (a + b + 2.0):
        return front * _beta_continued_fraction(a, b, x) / a
    return 1.0 - front * _beta_continued_fraction(b, a, 1.0 - x) / b


def student_t_cdf(t: float, df: float) -> float:
    """
    Cumulative distribution function of Student's t.

    Args:
        t: Test statistic
        df: Degrees of freedom (may be fractional, e.g. Welch)

    Returns:
        P(T <= t); 0.5 for degenerate degrees of freedom
    """
    if df is None or df <= 0 or t != t:
        return 0.5
    if math.isinf(t):
        return 1.0 if t > 0 else 0.0

    x = df / (df + t * t)
    tail = 0.5 * regularized_beta(df / 2.0, 0.5, x)
    return clamp_p(1.0 - tail if t > 0 else tail)


def two_sided_t_p(t: float, df: float) -> float:
    """
    Two-sided p-value for a t statistic.

    Computed from the tail directly so small p-values keep their precision.
    """
    if df is None or df <= 0 or t != t:
        return 1.0
    if math.isinf(t):
        return 0.0
    x = df / (df + t * t)
    return clamp_p(regularized_beta(df / 2.0, 0.5, x))


# Two-tailed and one-tailed critical values at alpha = 0.05, keyed by df
_T_TABLE_TWO_TAILED = {
    1: 12.706, 2: 4.303, 3: 3.182, 4: 2.776, 5: 2.571,
    6: 2.447, 7: 2.365, 8: 2.306, 9: 2.262, 10: 2.228,
    11: 2.201, 12: 2.179, 13: 2.160, 14: 2.145, 15: 2.131,
    16: 2.120, 17: 2.110, 18: 2.101, 19: 2.093, 20: 2.086,
    21: 2.080, 22: 2.074, 23: 2.069, 24: 2.064, 25: 2.060,
    26: 2.056, 27: 2.052, 28: 2.048, 29: 2.045, 30: 2.042,
}

_T_TABLE_ONE_TAILED = {
    1: 6.314, 2: 2.920, 3: 2.353, 4: 2.132, 5: 2.015,
    6: 1.943, 7: 1.895, 8: 1.860, 9: 1.833, 10: 1.812,
    11: 1.796, 12: 1.782, 13: 1.771, 14: 1.761, 15: 1.753,
    16: 1.746, 17: 1.740, 18: 1.734, 19: 1.729, 20: 1.725,
    21: 1.721, 22: 1.717, 23: 1.714, 24: 1.711, 25: 1.708,
    26: 1.706, 27: 1.703, 28: 1.701, 29: 1.699, 30: 1.697,
}


def t_critical(df: float, two_tailed: bool = True) -> float:
    """
    Critical t value at alpha = 0.05.

    Exact table values for df 1..30; the normal value beyond that.
    Fractional df round down (conservative).
    """
    table = _T_TABLE_TWO_TAILED if two_tailed else _T_TABLE_ONE_TAILED
    if df is None or df < 1:
        return table[1]
    df_int = int(math.floor(df))
    if df_int > 30:
        return 1.96 if two_tailed else 1.645
    return table[df_int]


# ---------------------------------------------------------------------------
# Chi-square
# ---------------------------------------------------------------------------

def _gamma_series(a: float, x: float) -> float:
    """Lower regularized gamma P(a, x) by series expansion (x < a + 1)."""
    ap = a
    total = 1.0 / a
    delta = total
    for _ in range(_MAX_ITER):
        ap += 1.0
        delta *= x / ap
        total += delta
        if abs(delta) < abs(total) * _EPS:
            break
    return total * math.exp(-x + a * math.log(x) - math.lgamma(a))


def _gamma_continued_fraction(a: float, x: float) -> float:
    """Upper regularized gamma Q(a, x) by continued fraction (x >= a + 1)."""
    b = x + 1.0 - a
    c = 1.0 / _FPMIN
    d = 1.0 / b
    h = d
    for i in range(1, _MAX_ITER + 1):
        an = -i * (i - a)
        b += 2.0
        d = an * d + b
        if abs(d) < _FPMIN:
            d = _FPMIN
        c = b + an / c
        if abs(c) < _FPMIN:
            c = _FPMIN
        d = 1.0 / d
        delta = d * c
        h *= delta
        if abs(delta - 1.0) < _EPS:
            break
    return math.exp(-x + a * math.log(x) - math.lgamma(a)) * h


def regularized_gamma_q(a: float, x: float) -> float:
    """Upper regularized incomplete gamma Q(a, x) = 1 - P(a, x)."""
    if a <= 0:
        return 1.0
    if x <= 0:
        return 1.0
    if x < a + 1.0:
        return clamp_p(1.0 - _gamma_series(a, x))
    return clamp_p(_gamma_continued_fraction(a, x))


def chi_square_cdf(x: float, df: float) -> float:
    """Cumulative distribution function of the chi-square distribution."""
    if df is None or df <= 0 or x != x:
        return 0.0
    if x <= 0:
        return 0.0
    return clamp_p(1.0 - regularized_gamma_q(df / 2.0, x / 2.0))


def chi_square_sf(x: float, df: float) -> float:
    """Upper-tail probability P(X >= x) of the chi-square distribution."""
    if df is None or df <= 0 or x != x:
        return 1.0
    if x <= 0:
        return 1.0
    return regularized_gamma_q(df / 2.0, x / 2.0)


def safe_ratio(num: float, den: float, default: float = 0.0) -> float:
    """Divide, returning `default` on a zero or non-finite denominator."""
    if den == 0 or den != den or math.isinf(den):
        return default
    return num / den


def finite_or_none(x: Optional[float]) -> Optional[float]:
    """Return x as a float if it is finite, otherwise None."""
    if x is None:
        return None
    x = float(x)
    if x != x or math.isinf(x):
        return None
    return x
