"""
Randomness audit of raw bit streams.

NIST SP 800-22 frequency (monobit), runs and longest-run-of-ones tests,
plus two coherence measures of the +/-1 walk: its range and an R/S Hurst
estimate. Used on both subject and control streams to confirm the source
behaves like fair coin flips.
"""

import math
from typing import Any, Dict, Optional, Sequence

import numpy as np

from ..core.numeric import chi_square_sf, two_sided_p
from ..core.records import Session
from .statistics import StatisticalResult, make_result

# (minimum n, block length M, run-length classes, class probabilities)
_LONGEST_RUN_TABLES = (
    (750000, 10000, (10, 11, 12, 13, 14, 15, 16),
     (0.0882, 0.2092, 0.2483, 0.1933, 0.1208, 0.0675, 0.0727)),
    (6272, 128, (4, 5, 6, 7, 8, 9),
     (0.1174, 0.2430, 0.2493, 0.1752, 0.1027, 0.1124)),
    (128, 8, (1, 2, 3, 4),
     (0.2148, 0.3672, 0.2305, 0.1875)),
)


def monobit_test(bits: Sequence[int], alpha: float = 0.01,
                 min_n: int = 100) -> Optional[StatisticalResult]:
    """NIST frequency (monobit) test; None below min_n bits."""
    n = len(bits)
    if n < min_n:
        return None
    s = sum(1 if b else -1 for b in bits)
    s_obs = abs(s) / math.sqrt(n)
    return make_result('nist_monobit', s_obs, two_sided_p(s_obs), alpha, n=n,
                       extras={'ones': (n + s) // 2})


def nist_runs_test(bits: Sequence[int], alpha: float = 0.01,
                   min_n: int = 100) -> Optional[StatisticalResult]:
    """
    NIST runs test.

    When the frequency prerequisite |pi - 1/2| < 2 / sqrt(n) fails the test
    is not applicable and reports p = 0.
    """
    n = len(bits)
    if n < min_n:
        return None
    pi = sum(1 for b in bits if b) / n
    if abs(pi - 0.5) >= 2 / math.sqrt(n):
        return make_result('nist_runs', 0.0, 0.0, alpha, n=n,
                           extras={'prerequisite_failed': True, 'pi': pi})

    runs = 1 + sum(1 for i in range(1, n) if bool(bits[i]) != bool(bits[i - 1]))
    expected = 2 * n * pi * (1 - pi)
    statistic = abs(runs - expected) / (2 * math.sqrt(2 * n) * pi * (1 - pi))
    return make_result('nist_runs', runs, math.erfc(statistic), alpha, n=n,
                       extras={'prerequisite_failed': False, 'pi': pi, 'expected': expected})


def longest_run_test(bits: Sequence[int], alpha: float = 0.01) -> Optional[StatisticalResult]:
    """NIST longest-run-of-ones-in-a-block test; None below 128 bits."""
    n = len(bits)
    for min_n, m, classes, probs in _LONGEST_RUN_TABLES:
        if n >= min_n:
            break
    else:
        return None

    blocks = n // m
    counts = [0] * len(classes)
    for start in range(0, blocks * m, m):
        longest = current = 0
        for b in bits[start:start + m]:
            current = current + 1 if b else 0
            longest = max(longest, current)
        if longest <= classes[0]:
            counts[0] += 1
        elif longest >= classes[-1]:
            counts[-1] += 1
        else:
            counts[classes.index(longest)] += 1

    chi2 = sum((v - blocks * p) ** 2 / (blocks * p) for v, p in zip(counts, probs))
    df = len(classes) - 1
    return make_result('nist_longest_run', chi2, chi_square_sf(chi2, df), alpha,
                       df=df, n=n, extras={'block_length': m, 'counts': counts})


def cumulative_range(bits: Sequence[int]) -> int:
    """Range (max - min) of the +/-1 walk, starting from 0."""
    position = low = high = 0
    for b in bits:
        position += 1 if b else -1
        low = min(low, position)
        high = max(high, position)
    return high - low


def hurst_approx(bits: Sequence[int]) -> float:
    """
    Rough Hurst exponent by rescaled range on the +/-1 mapping.

    log(R/S) / log(n) clamped to [0, 1]; 0.5 for fewer than 20 bits.
    """
    n = len(bits)
    if n < 20:
        return 0.5
    x = np.where(np.asarray(bits) > 0, 1.0, -1.0)
    deviations = x - x.mean()
    walk = np.concatenate(([0.0], np.cumsum(deviations)))
    r = float(walk.max() - walk.min())
    s = math.sqrt(float(np.mean(deviations ** 2))) or 1.0
    ratio = r / s
    if ratio <= 0:
        return 0.0
    return max(0.0, min(1.0, math.log(ratio) / math.log(n)))


def audit_bits(bits: Sequence[int], alpha: float = 0.01) -> Dict[str, Any]:
    """Every randomness measure for one bit stream."""
    return {
        'bits': len(bits),
        'monobit': monobit_test(bits, alpha),
        'runs': nist_runs_test(bits, alpha),
        'longest_run': longest_run_test(bits, alpha),
        'cumulative_range': cumulative_range(bits),
        'hurst': hurst_approx(bits),
    }


def audit_sessions(sessions: Sequence[Session], alpha: float = 0.01) -> Dict[str, Any]:
    """Audit the pooled subject and control streams of a session set."""
    subject = []
    control = []
    for session in sessions:
        _, c = session.paired_bits()
        control.extend(c)
        subject.extend(session.subject_bits())
    return {
        'subject': audit_bits(subject, alpha),
        'control': audit_bits(control, alpha),
    }
