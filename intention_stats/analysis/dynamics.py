"""
Temporal dynamics of hit rates within sessions.

Computes block-level and trial-level structure that a purely pooled hit
rate hides: autocorrelation at several lags, first-half vs second-half
drift, sequential differences, turning points, runs, spectra and
oscillation signatures.

All of these are exploratory: each result is tested on its own and no
correction is applied across them.
"""

import math
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..core.config import AnalysisConfig
from ..core.records import Session
from ..core.sequences import (
    autocorrelation,
    linear_trend,
    periodogram,
    runs_test,
    sequential_differences,
    turning_points,
)
from .statistics import one_sample_t_test, paired_t_test


def block_rate_series(session: Session) -> List[float]:
    """Subject hit rate of each non-empty block, in block order."""
    return [b.hit_rate for b in session.blocks if b.n > 0]


def control_rate_series(session: Session) -> List[float]:
    """Control hit rate of each block that has a control count."""
    return [b.control_rate for b in session.blocks if b.control_rate is not None]


def trial_sequences(session: Session) -> Tuple[List[int], List[int]]:
    """
    Subject and control bit sequences for trial-level analysis.

    Uses raw block bits where present, otherwise the per-trial rows.
    """
    subject = session.subject_bits()
    _, control = session.paired_bits()
    if subject:
        return subject, control

    rows = session.trials()
    subject = [t.subject_bit for t in rows]
    control = [t.control_bit for t in rows if t.control_bit is not None]
    if len(control) != len(subject):
        control = []
    return subject, control


def lag_autocorrelation_test(
    series_list: Sequence[Sequence[float]],
    lag: int,
    alpha: float = 0.05,
) -> Dict[str, Any]:
    """
    Mean per-session autocorrelation at `lag`, tested against zero.

    Series not longer than the lag are left out.
    """
    values = [autocorrelation(s, lag) for s in series_list if len(s) > lag]
    return {
        'lag': lag,
        'count': len(values),
        'mean': float(np.mean(values)) if values else None,
        'sd': float(np.std(values, ddof=1)) if len(values) > 1 else None,
        'test': one_sample_t_test(values, 0.0, alpha),
    }


def half_comparison(series_list: Sequence[Sequence[float]],
                    alpha: float = 0.05) -> Optional[Dict[str, Any]]:
    """
    First half vs second half of each session (split at floor(n / 2)).

    Returns the half means and a paired t-test, or None without at least
    two series of length >= 2.
    """
    first, second = [], []
    for series in series_list:
        if len(series) < 2:
            continue
        mid = len(series) // 2
        first.append(float(np.mean(series[:mid])))
        second.append(float(np.mean(series[mid:])))

    if len(first) < 2:
        return None

    return {
        'n': len(first),
        'first_half_mean': float(np.mean(first)),
        'second_half_mean': float(np.mean(second)),
        'mean_difference': float(np.mean(second) - np.mean(first)),
        'test': paired_t_test(second, first, alpha),
    }


def sequential_difference_stats(series_list: Sequence[Sequence[float]]) -> Dict[str, Any]:
    """Mean and spread of block-to-block changes, pooled over sessions."""
    diffs = [d for s in series_list for d in sequential_differences(s)]
    if not diffs:
        return {'count': 0, 'mean': None, 'sd': None, 'mean_abs': None}
    arr = np.asarray(diffs)
    return {
        'count': len(diffs),
        'mean': float(arr.mean()),
        'sd': float(arr.std()),
        'mean_abs': float(np.abs(arr).mean()),
    }


def turning_point_summary(series_list: Sequence[Sequence[float]]) -> Dict[str, Any]:
    """Turning-point statistics averaged over sessions."""
    analyses = [turning_points(s) for s in series_list if len(s) >= 3]
    if not analyses:
        return {'sessions': 0}

    def avg(attr):
        return float(np.mean([getattr(tp, attr) for tp in analyses]))

    ratios = [tp.ratio for tp in analyses if tp.ratio is not None]
    return {
        'sessions': len(analyses),
        'total': avg('total'),
        'maxima': avg('maxima'),
        'minima': avg('minima'),
        'expected': avg('expected'),
        'excess': avg('excess'),
        'excess_percent': avg('excess_percent'),
        'rate': avg('rate'),
        'ratio': float(np.mean(ratios)) if ratios else None,
    }


def detect_harmonic_oscillations(series: Sequence[float]) -> Dict[str, Any]:
    """
    Find the lag in 2..n//4 with the strongest autocorrelation.

    Strength is min(1, 4 * variance) of the series; coherence is the
    |autocorrelation| at the best lag. Needs at least 10 points.
    """
    n = len(series)
    empty = {'dominant_period': 0, 'dominant_freq': 0.0, 'dominant_power': 0.0,
             'oscillation_strength': 0.0, 'coherence': 0.0}
    if n < 10:
        return empty

    best_corr = 0.0
    best_period = 0
    for period in range(2, n // 4 + 1):
        corr = abs(autocorrelation(series, period))
        if corr > best_corr:
            best_corr = corr
            best_period = period

    variance = float(np.var(series))
    return {
        'dominant_period': best_period,
        'dominant_freq': 1.0 / best_period if best_period > 0 else 0.0,
        'dominant_power': best_corr,
        'oscillation_strength': min(1.0, variance * 4),
        'coherence': best_corr if best_period > 0 else 0.0,
    }


def detect_damped_oscillator(series: Sequence[float]) -> Dict[str, Any]:
    """
    Look for an exponentially decaying envelope of local peaks.

    Fits log(peak value) against peak order; a positive decay (> 0.01)
    with R^2 > 0.3 and a defined peak spacing counts as detected. Needs at
    least 20 points and three each of peaks and troughs.
    """
    not_detected = {'detected': False, 'damping_factor': None,
                    'natural_freq': None, 'fit_quality': None}
    n = len(series)
    if n < 20:
        return not_detected

    peaks: List[Tuple[int, float]] = []
    troughs = 0
    for i in range(1, n - 1):
        if series[i] > series[i - 1] and series[i] > series[i + 1]:
            peaks.append((i, series[i]))
        if series[i] < series[i - 1] and series[i] < series[i + 1]:
            troughs += 1

    if len(peaks) < 3 or troughs < 3:
        return not_detected
    if any(value <= 0 for _, value in peaks):
        return not_detected

    trend = linear_trend([math.log(value) for _, value in peaks])
    damping = -trend.slope
    spacing = (peaks[-1][0] - peaks[0][0]) / (len(peaks) - 1)
    natural_freq = 1.0 / spacing if spacing > 0 else 0.0

    detected = damping > 0.01 and trend.r2 > 0.3 and natural_freq > 0
    if not detected:
        return not_detected
    return {'detected': True, 'damping_factor': damping,
            'natural_freq': natural_freq, 'fit_quality': trend.r2}


def analyze_block_dynamics(
    sessions: Sequence[Session],
    config: Optional[AnalysisConfig] = None,
) -> Dict[str, Any]:
    """
    Block-level temporal analysis over sessions with enough blocks.

    Args:
        sessions: Filtered sessions
        config: Uses block_lags, min_blocks_temporal and alpha

    Returns:
        Dict with per-lag autocorrelation tests (subject and control), the
        half comparison, sequential differences, turning points, a runs
        test on the combined block sequence, per-session trends and
        oscillation signatures. `sessions` is 0 when nothing qualifies.
    """
    config = config or AnalysisConfig()
    eligible = [s for s in sessions if len(block_rate_series(s)) >= config.min_blocks_temporal]
    if not eligible:
        return {'sessions': 0, 'min_blocks': config.min_blocks_temporal}

    subject_series = [block_rate_series(s) for s in eligible]
    control_series = [c for c in (control_rate_series(s) for s in eligible)
                      if len(c) >= config.min_blocks_temporal]

    combined = [rate for series in subject_series for rate in series]
    combined_bits = [1 if rate > 0.5 else 0 for rate in combined]

    per_session = []
    harmonic_hits = 0
    damped_hits = 0
    for session, series in zip(eligible, subject_series):
        harmonic = detect_harmonic_oscillations(series)
        damped = detect_damped_oscillator(series)
        damped_hits += damped['detected']
        harmonic_hits += harmonic['dominant_period'] > 0
        per_session.append({
            'session_id': session.session_id,
            'blocks': len(series),
            'trend': linear_trend(series),
            'turning_points': turning_points(series),
            'harmonic': harmonic,
            'damped': damped,
        })

    return {
        'sessions': len(eligible),
        'min_blocks': config.min_blocks_temporal,
        'autocorrelation': {
            'subject': [lag_autocorrelation_test(subject_series, lag, config.alpha)
                        for lag in config.block_lags],
            'control': [lag_autocorrelation_test(control_series, lag, config.alpha)
                        for lag in config.block_lags],
        },
        'half_comparison': half_comparison(subject_series, config.alpha),
        'sequential_differences': sequential_difference_stats(subject_series),
        'turning_points': turning_point_summary(subject_series),
        'runs': runs_test(combined_bits),
        'oscillations': {
            'harmonic_sessions': harmonic_hits,
            'damped_sessions': damped_hits,
        },
        'per_session': per_session,
    }


def analyze_trial_dynamics(
    sessions: Sequence[Session],
    config: Optional[AnalysisConfig] = None,
) -> Dict[str, Any]:
    """
    Trial-level autocorrelation, runs and spectra on raw bit sequences.

    Spectra use a Hann window; sequences shorter than `welch_below` use
    Welch averaging over `segment_length`-sample segments. Sequences under
    `min_spectral_length` get no spectrum.
    """
    config = config or AnalysisConfig()
    subject_seqs: List[List[int]] = []
    control_seqs: List[List[int]] = []
    spectra = []
    runs = []

    for session in sessions:
        subject, control = trial_sequences(session)
        if not subject:
            continue
        subject_seqs.append(subject)
        if control:
            control_seqs.append(control)

        result = runs_test(subject)
        runs.append({'session_id': session.session_id, 'trials': len(subject),
                     'z': result.z, 'p_value': result.p_value})

        if len(subject) >= config.min_spectral_length:
            method = 'welch' if len(subject) < config.welch_below else 'direct'
            spectrum = periodogram(subject, window='hann', method=method,
                                   segment_length=config.segment_length)
            spectra.append({'session_id': session.session_id, 'trials': len(subject),
                            'spectrum': spectrum})

    if not subject_seqs:
        return {'sessions': 0}

    peak_freqs = [s['spectrum'].peak_frequency for s in spectra]
    runs_rejections = sum(1 for r in runs if r['p_value'] < config.alpha)

    return {
        'sessions': len(subject_seqs),
        'autocorrelation': {
            'subject': [lag_autocorrelation_test(subject_seqs, lag, config.alpha)
                        for lag in config.trial_lags],
            'control': [lag_autocorrelation_test(control_seqs, lag, config.alpha)
                        for lag in config.trial_lags],
        },
        'runs': {
            'sessions': runs,
            'rejections': runs_rejections,
            'rejection_rate': runs_rejections / len(runs),
        },
        'spectral': {
            'sessions': spectra,
            'mean_peak_frequency': float(np.mean(peak_freqs)) if peak_freqs else None,
        },
    }
