"""
Hold-duration report: does pressing longer go with more hits?
"""

from typing import Any, Dict, List, Optional, Sequence

from ..core.config import AnalysisConfig
from ..core.records import Session, Trial
from ..core.sequences import pearson_correlation, quartiles
from .statistics import two_proportion_z_test


def _quartile_of(duration: float, q1: float, q2: float, q3: float) -> int:
    if duration <= q1:
        return 0
    if duration <= q2:
        return 1
    if duration <= q3:
        return 2
    return 3


def hold_duration_report(
    sessions: Sequence[Session],
    config: Optional[AnalysisConfig] = None,
) -> Optional[Dict[str, Any]]:
    """
    Subject hit rate by hold-duration quartile.

    Only trials carrying a hold duration take part. Returns None with fewer
    than `config.min_hold_trials` such trials.

    Returns:
        Dict with quartile cut points, per-quartile hit rates, a Q4-vs-Q1
        two-proportion z-test and the duration/hit Pearson r
    """
    config = config or AnalysisConfig()
    trials: List[Trial] = [t for s in sessions for t in s.trials()
                           if t.hold_duration_ms is not None]
    if len(trials) < config.min_hold_trials:
        return None

    durations = [t.hold_duration_ms for t in trials]
    hits = [t.subject_bit for t in trials]
    q1, q2, q3 = quartiles(durations)

    counts = [[0, 0] for _ in range(4)]  # [hits, n]
    for duration, hit in zip(durations, hits):
        bucket = counts[_quartile_of(duration, q1, q2, q3)]
        bucket[0] += hit
        bucket[1] += 1

    rows = []
    for i, (k, n) in enumerate(counts):
        rows.append({'quartile': i + 1, 'trials': n, 'hits': k,
                     'hit_rate': k / n if n > 0 else None})

    return {
        'trials': len(trials),
        'cut_points': {'q1': q1, 'median': q2, 'q3': q3},
        'quartiles': rows,
        'q4_vs_q1': two_proportion_z_test(counts[3][0], counts[3][1],
                                          counts[0][0], counts[0][1], config.alpha),
        'correlation': pearson_correlation(durations, hits, config.min_correlation_n),
    }
