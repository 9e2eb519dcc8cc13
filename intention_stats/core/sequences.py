"""
Sequence statistics for hit-rate series and raw bit streams.

Provides functions for:
- Binary Shannon entropy
- Autocorrelation and cross-correlation at a lag
- Least-squares linear trend
- Turning-point counting
- Periodogram (optional Hann window, optional Welch averaging)
- Wald-Wolfowitz runs test
- R type-7 quantiles
"""

import math
from dataclasses import dataclass, asdict
from typing import List, Dict, Optional, Sequence, Tuple, Any

import numpy as np

from .numeric import two_sided_p


@dataclass(frozen=True)
class TrendFit:
    """Ordinary least squares fit of a series against its index."""
    slope: float
    intercept: float
    r2: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class TurningPoints:
    """Counts of strict local extrema in a series."""
    maxima: int
    minima: int
    total: int
    expected: float       # (n - 2) * 0.5 under random ordering
    excess: float         # total - expected
    excess_percent: float
    rate: float           # total per interior position
    ratio: Optional[float]  # maxima / minima, None when undefined

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Spectrum:
    """Periodogram of a mean-removed series."""
    frequencies: Tuple[float, ...]
    powers: Tuple[float, ...]
    peak_frequency: float
    peak_power: float
    total_power: float
    method: str
    segments: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class RunsResult:
    """Wald-Wolfowitz runs test result."""
    num_runs: int
    expected: float
    z: float
    p_value: float
    n1: int = 0
    n2: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def shannon_entropy(bits: Sequence[int]) -> float:
    """
    Binary Shannon entropy in bits per symbol.

    Args:
        bits: Sequence of 0/1 values

    Returns:
        Entropy in [0, 1]; 0 for an empty or constant sequence
    """
    n = len(bits)
    if n == 0:
        return 0.0
    ones = sum(1 for b in bits if b)
    p = ones / n
    if p == 0 or p == 1:
        return 0.0
    return -p * math.log2(p) - (1 - p) * math.log2(1 - p)


def entropy_windows(bits: Sequence[int], k: int) -> Optional[List[float]]:
    """
    Split a bit stream into k equal consecutive windows and take each entropy.

    Trailing bits that do not fill a window are dropped. Returns None if
    there are fewer than k bits.
    """
    n = len(bits)
    if k <= 0 or n < k:
        return None
    size = n // k
    return [shannon_entropy(bits[i * size:(i + 1) * size]) for i in range(k)]


def autocorrelation(series: Sequence[float], lag: int) -> float:
    """
    Autocorrelation at a lag, normalized by the lag-0 autocovariance.

    Uses the mean of the whole series (textbook estimator).
    Returns 0 when the series is not longer than the lag or is constant.
    """
    n = len(series)
    if n <= lag:
        return 0.0

    x = np.asarray(series, dtype=float)
    centered = x - x.mean()
    denominator = float(np.dot(centered, centered))
    if denominator == 0:
        return 0.0

    numerator = float(np.dot(centered[:n - lag], centered[lag:]))
    return numerator / denominator


def cross_correlation(x: Sequence[float], y: Sequence[float], lag: int = 0) -> float:
    """
    Correlation between x[i] and y[i + lag] over the overlapping window.

    Negative lags pair x[i - lag] with y[i]. Series means are taken over the
    full series; sums of squares over the overlap only.

    Returns 0 for unequal lengths, no overlap, or zero variance.
    """
    n = len(x)
    if n == 0 or n != len(y):
        return 0.0
    eff = n - abs(lag)
    if eff <= 0:
        return 0.0

    xa = np.asarray(x, dtype=float)
    ya = np.asarray(y, dtype=float)
    xc = xa - xa.mean()
    yc = ya - ya.mean()

    if lag >= 0:
        xs, ys = xc[:eff], yc[lag:lag + eff]
    else:
        xs, ys = xc[-lag:-lag + eff], yc[:eff]

    denom = math.sqrt(float(np.dot(xs, xs)) * float(np.dot(ys, ys)))
    if denom == 0:
        return 0.0
    return float(np.dot(xs, ys)) / denom


def pearson_correlation(x: Sequence[float], y: Sequence[float],
                        min_n: int = 3) -> Optional[float]:
    """
    Pearson correlation coefficient.

    Returns None when the series differ in length or have fewer than
    `min_n` points, and 0 when either series is constant.
    """
    n = len(x)
    if n != len(y) or n < min_n:
        return None
    return cross_correlation(x, y, 0)


def max_cross_correlation(x: Sequence[float], y: Sequence[float],
                          max_lag: Optional[int] = None,
                          min_n: int = 10) -> Optional[Dict[str, float]]:
    """
    Scan lags in [-max_lag, max_lag] for the strongest cross-correlation.

    Default max_lag is min(20, n // 4). Returns None for fewer than `min_n`
    points.
    """
    n = min(len(x), len(y))
    if n < min_n:
        return None
    x, y = list(x)[:n], list(y)[:n]
    if max_lag is None:
        max_lag = min(20, n // 4)

    best_corr = 0.0
    best_lag = 0
    for lag in range(-max_lag, max_lag + 1):
        corr = cross_correlation(x, y, lag)
        if abs(corr) > abs(best_corr):
            best_corr = corr
            best_lag = lag

    return {'max_corr': best_corr, 'lag': best_lag, 'max_lag': max_lag}


def linear_trend(series: Sequence[float]) -> TrendFit:
    """Least-squares slope, intercept and R^2 against index 0..n-1."""
    n = len(series)
    if n < 2:
        return TrendFit(slope=0.0, intercept=float(series[0]) if n == 1 else 0.0, r2=0.0)

    y = np.asarray(series, dtype=float)
    x = np.arange(n, dtype=float)
    mean_x = x.mean()
    mean_y = y.mean()

    sxx = float(np.sum((x - mean_x) ** 2))
    sxy = float(np.sum((x - mean_x) * (y - mean_y)))
    slope = sxy / sxx if sxx != 0 else 0.0
    intercept = mean_y - slope * mean_x

    ss_res = float(np.sum((y - (slope * x + intercept)) ** 2))
    ss_tot = float(np.sum((y - mean_y) ** 2))
    r2 = 1.0 - ss_res / ss_tot if ss_tot != 0 else 0.0

    return TrendFit(slope=float(slope), intercept=float(intercept), r2=float(r2))


def turning_points(series: Sequence[float]) -> TurningPoints:
    """
    Count strict local maxima and minima.

    The reference count is (n - 2) * 0.5, one half per interior position,
    and `excess` is measured against it.
    """
    n = len(series)
    if n < 3:
        return TurningPoints(maxima=0, minima=0, total=0, expected=0.0,
                             excess=0.0, excess_percent=0.0, rate=0.0, ratio=None)

    maxima = 0
    minima = 0
    for i in range(1, n - 1):
        if series[i] > series[i - 1] and series[i] > series[i + 1]:
            maxima += 1
        elif series[i] < series[i - 1] and series[i] < series[i + 1]:
            minima += 1

    total = maxima + minima
    expected = (n - 2) * 0.5
    excess = total - expected

    if minima > 0:
        ratio = maxima / minima
    elif maxima > 0:
        ratio = None
    else:
        ratio = 1.0

    return TurningPoints(
        maxima=maxima,
        minima=minima,
        total=total,
        expected=expected,
        excess=excess,
        excess_percent=(excess / expected) * 100 if expected > 0 else 0.0,
        rate=total / (n - 2),
        ratio=ratio,
    )


def hann_window(n: int) -> np.ndarray:
    """Symmetric Hann window of length n."""
    if n <= 1:
        return np.ones(max(n, 0))
    i = np.arange(n, dtype=float)
    return 0.5 * (1 - np.cos(2 * np.pi * i / (n - 1)))


def _segment_power(segment: np.ndarray, window: Optional[np.ndarray]) -> np.ndarray:
    """One-sided power 2|X_k|^2 / n for k = 1..n//2."""
    m = len(segment)
    if window is not None:
        segment = segment * window
    spectrum = np.fft.rfft(segment)
    return 2.0 * np.abs(spectrum[1:m // 2 + 1]) ** 2 / m


def periodogram(series: Sequence[float],
                window: str = 'none',
                method: str = 'direct',
                segment_length: int = 128) -> Spectrum:
    """
    Power spectrum of a mean-removed series.

    Args:
        series: Input values
        window: 'none' or 'hann'
        method: 'direct' (single periodogram) or 'welch' (50%-overlapping
                segments of `segment_length`, averaged)
        segment_length: Welch segment size

    Returns:
        Spectrum over frequencies k/m, k = 1..m//2 (m = n or segment_length).
        Welch falls back to a direct periodogram when no full segment fits.
    """
    if window not in ('none', 'hann'):
        raise ValueError(f"Unknown window: {window}")
    if method not in ('direct', 'welch'):
        raise ValueError(f"Unknown method: {method}")

    n = len(series)
    if n < 4:
        return Spectrum(frequencies=(), powers=(), peak_frequency=0.0,
                        peak_power=0.0, total_power=0.0, method='none', segments=0)

    x = np.asarray(series, dtype=float)
    centered = x - x.mean()

    if method == 'welch' and segment_length >= 4:
        step = max(1, segment_length // 2)
        starts = list(range(0, n - segment_length + 1, step))
        if starts:
            win = hann_window(segment_length) if window == 'hann' else None
            accum = np.zeros(segment_length // 2)
            for start in starts:
                accum += _segment_power(centered[start:start + segment_length], win)
            powers = accum / len(starts)
            freqs = np.arange(1, segment_length // 2 + 1) / segment_length
            return _spectrum(freqs, powers, 'welch', len(starts))

    win = hann_window(n) if window == 'hann' else None
    powers = _segment_power(centered, win)
    freqs = np.arange(1, n // 2 + 1) / n
    return _spectrum(freqs, powers, 'periodogram-hann' if window == 'hann' else 'periodogram', 1)


def _spectrum(freqs: np.ndarray, powers: np.ndarray, method: str, segments: int) -> Spectrum:
    """Package a power array, locating the first maximum."""
    peak_index = int(np.argmax(powers)) if len(powers) else 0
    return Spectrum(
        frequencies=tuple(float(f) for f in freqs),
        powers=tuple(float(p) for p in powers),
        peak_frequency=float(freqs[peak_index]) if len(freqs) else 0.0,
        peak_power=float(powers[peak_index]) if len(powers) else 0.0,
        total_power=float(np.sum(powers)),
        method=method,
        segments=segments,
    )


def runs_test(series: Sequence[float], threshold: float = 0.5) -> RunsResult:
    """
    Wald-Wolfowitz runs test.

    Values >= threshold form one class, the rest the other; a 0/1 sequence
    is used as-is with the default threshold.

    Returns p = 1 when either class is empty.
    """
    if len(series) == 0:
        return RunsResult(num_runs=0, expected=0.0, z=0.0, p_value=1.0)

    binary = [x >= threshold for x in series]
    num_runs = 1
    for i in range(1, len(binary)):
        if binary[i] != binary[i - 1]:
            num_runs += 1

    n1 = sum(binary)
    n2 = len(binary) - n1
    n = n1 + n2

    if n1 == 0 or n2 == 0:
        return RunsResult(num_runs=num_runs, expected=0.0, z=0.0, p_value=1.0, n1=n1, n2=n2)

    expected = 2.0 * n1 * n2 / n + 1
    variance = (2.0 * n1 * n2 * (2.0 * n1 * n2 - n)) / (n * n * (n - 1))
    z = (num_runs - expected) / math.sqrt(variance) if variance > 0 else 0.0

    return RunsResult(num_runs=num_runs, expected=expected, z=z,
                      p_value=two_sided_p(z), n1=n1, n2=n2)


def quantile(sorted_values: Sequence[float], q: float) -> Optional[float]:
    """
    Quantile by linear interpolation between order statistics (R type 7).

    Args:
        sorted_values: Values in ascending order
        q: Probability in [0, 1]

    Returns:
        Interpolated quantile, or None for empty input
    """
    n = len(sorted_values)
    if n == 0:
        return None
    q = min(1.0, max(0.0, q))
    h = (n - 1) * q
    lo = int(math.floor(h))
    hi = min(lo + 1, n - 1)
    return float(sorted_values[lo] + (h - lo) * (sorted_values[hi] - sorted_values[lo]))


def quartiles(values: Sequence[float]) -> Optional[Tuple[float, float, float]]:
    """Q1, median and Q3 of unsorted values; None if empty."""
    if len(values) == 0:
        return None
    ordered = sorted(values)
    return quantile(ordered, 0.25), quantile(ordered, 0.5), quantile(ordered, 0.75)


def sequential_differences(series: Sequence[float]) -> List[float]:
    """First differences x[i] - x[i-1]."""
    return [series[i] - series[i - 1] for i in range(1, len(series))]
