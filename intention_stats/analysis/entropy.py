"""
Entropy analyses of the subject and control bit streams.

Temporal windowing splits each session's bit stream into 2 or 3 equal
windows and asks whether entropy drifts over the session:
- k = 2: paired t-test on (second - first), with a bootstrap CI and a
  sign-flip permutation test
- k = 3: linear contrast (late - early), pairwise contrasts corrected with
  both Holm and Benjamini-Hochberg, and a differential-slope test of
  subject trend against control trend

Corrections here are scoped to the contrasts of one test, never across
the exploratory suite.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..core.config import AnalysisConfig
from ..core.records import Session
from ..core.sequences import entropy_windows
from .aggregator import SessionSummary
from .corrections import benjamini_hochberg, holm_bonferroni
from .statistics import (
    bootstrap_ci,
    one_sample_t_test,
    paired_t_test,
    sign_flip_permutation_test,
)

logger = logging.getLogger(__name__)

Windows = Optional[Tuple[float, ...]]


def session_entropy_windows(session: Session) -> Dict[str, Windows]:
    """
    Subject/control entropy windows for k = 2 and k = 3.

    Stored temporal entropy wins; otherwise windows are computed from the
    session's raw bits. When any block carries both halves, subject and
    control windows are both cut from those paired blocks so they cover the
    same trials. A window set that cannot be formed is None.
    """
    stored = session.temporal_entropy
    paired_subject, control_bits = session.paired_bits()
    subject_bits = paired_subject if control_bits else session.subject_bits()

    def computed(bits, k):
        windows = entropy_windows(bits, k) if bits else None
        return tuple(windows) if windows is not None else None

    def pick(stored_value, bits, k):
        if stored_value is not None:
            return stored_value
        return computed(bits, k)

    return {
        'subject_k2': pick(stored.subject_k2 if stored else None, subject_bits, 2),
        'subject_k3': pick(stored.subject_k3 if stored else None, subject_bits, 3),
        'control_k2': pick(stored.control_k2 if stored else None, control_bits, 2),
        'control_k3': pick(stored.control_k3 if stored else None, control_bits, 3),
    }


def _mean(values: Sequence[float]) -> Optional[float]:
    return float(np.mean(values)) if len(values) else None


def temporal_entropy_k2(
    sessions: Sequence[Session],
    config: Optional[AnalysisConfig] = None,
) -> Optional[Dict[str, Any]]:
    """
    Two-window entropy drift test.

    Returns None when no session has subject k = 2 windows.
    """
    config = config or AnalysisConfig()
    subject_diffs: List[float] = []
    control_diffs: List[float] = []
    firsts: List[float] = []
    seconds: List[float] = []

    for session in sessions:
        windows = session_entropy_windows(session)
        subject = windows['subject_k2']
        if subject is None:
            continue
        firsts.append(subject[0])
        seconds.append(subject[1])
        subject_diffs.append(subject[1] - subject[0])
        control = windows['control_k2']
        if control is not None:
            control_diffs.append(control[1] - control[0])

    if not subject_diffs:
        return None

    test = paired_t_test(seconds, firsts, config.alpha)
    mean_diff = float(np.mean(subject_diffs))
    return {
        'n': len(subject_diffs),
        'first_mean': _mean(firsts),
        'second_mean': _mean(seconds),
        'mean_difference': mean_diff,
        'test': test,
        'bootstrap_ci': bootstrap_ci(subject_diffs, config.n_bootstrap, seed=config.seed,
                                     max_n=config.max_resample_n),
        'permutation': sign_flip_permutation_test(subject_diffs, config.n_permutations,
                                                  config.seed, config.alpha,
                                                  max_n=config.max_resample_n),
        'control': {
            'n': len(control_diffs),
            'mean_difference': _mean(control_diffs),
            'test': one_sample_t_test(control_diffs, 0.0, config.alpha, test_name='paired_t'),
        },
        'direction': 'increase' if mean_diff > 0 else 'decrease' if mean_diff < 0 else 'none',
    }


def temporal_entropy_k3(
    sessions: Sequence[Session],
    config: Optional[AnalysisConfig] = None,
) -> Optional[Dict[str, Any]]:
    """
    Three-window entropy progression.

    Uses sessions with both subject and control k = 3 windows (the
    differential slope needs both). Returns None when there are none.
    """
    config = config or AnalysisConfig()
    rows = []
    for session in sessions:
        windows = session_entropy_windows(session)
        if windows['subject_k3'] is not None and windows['control_k3'] is not None:
            rows.append((windows['subject_k3'], windows['control_k3']))

    if not rows:
        return None

    early = [s[0] for s, _ in rows]
    middle = [s[1] for s, _ in rows]
    late = [s[2] for s, _ in rows]

    contrasts = {
        'early_vs_middle': paired_t_test(middle, early, config.alpha),
        'early_vs_late': paired_t_test(late, early, config.alpha),
        'middle_vs_late': paired_t_test(late, middle, config.alpha),
    }
    tests = [(label, result if result is not None else 1.0)
             for label, result in contrasts.items()]

    subject_trend = [s[2] - s[0] for s, _ in rows]
    control_trend = [c[2] - c[0] for _, c in rows]

    return {
        'n': len(rows),
        'means': {'early': _mean(early), 'middle': _mean(middle), 'late': _mean(late)},
        'linear_trend': one_sample_t_test(subject_trend, 0.0, config.alpha,
                                          test_name='linear_contrast_t'),
        'contrasts': contrasts,
        'holm': holm_bonferroni(tests, config.alpha, family='exploratory'),
        'fdr': benjamini_hochberg(tests, config.alpha, family='exploratory'),
        'differential_slope': {
            'subject_mean_trend': _mean(subject_trend),
            'control_mean_trend': _mean(control_trend),
            'test': paired_t_test(subject_trend, control_trend, config.alpha),
        },
    }


def entropy_suppression_test(
    summaries: Sequence[SessionSummary],
    alpha: float = 0.05,
) -> Optional[Dict[str, Any]]:
    """
    Paired test of mean subject block entropy against mean control entropy.

    Sessions missing either side are left out.
    """
    pairs = [(s.entropy_mean, s.control_entropy_mean) for s in summaries
             if s.entropy_mean is not None and s.control_entropy_mean is not None]
    if len(pairs) < 2:
        return None
    subject = [p[0] for p in pairs]
    control = [p[1] for p in pairs]
    return {
        'n': len(pairs),
        'subject_mean': _mean(subject),
        'control_mean': _mean(control),
        'test': paired_t_test(subject, control, alpha),
    }


def analyze_entropy(
    sessions: Sequence[Session],
    summaries: Sequence[SessionSummary],
    config: Optional[AnalysisConfig] = None,
) -> Dict[str, Any]:
    """Run all entropy analyses for a filtered session set."""
    config = config or AnalysisConfig()
    k2 = temporal_entropy_k2(sessions, config)
    k3 = temporal_entropy_k3(sessions, config)
    logger.debug("Temporal entropy: k2 n=%s, k3 n=%s",
                 k2['n'] if k2 else 0, k3['n'] if k3 else 0)
    return {
        'temporal_k2': k2,
        'temporal_k3': k3,
        'suppression': entropy_suppression_test(summaries, config.alpha),
    }
