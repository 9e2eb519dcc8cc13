"""
Control-stream validation.

The subject and control halves of one random fetch must be independent and
the control stream must sit at chance. These checks are sanity checks of
the apparatus, not hypothesis tests about participants; a session failing
them is flagged `suspected_dependence` for inspection.
"""

import logging
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..core.config import AnalysisConfig
from ..core.numeric import two_sided_p
from ..core.records import Session
from ..core.sequences import max_cross_correlation, pearson_correlation
from .binomial import binom_z
from .statistics import StatisticalResult, chi_square_2x2, make_result

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionControlCheck:
    """Independence and health checks for one session."""
    session_id: str
    paired_bits: int
    correlation: Optional[float]
    chi_square: Optional[StatisticalResult]
    cross_correlation: Optional[Dict[str, float]]
    control_trials: int
    control_hits: int
    control_rate: Optional[float]
    control_z: Optional[StatisticalResult]
    data_completion: Optional[float]
    health_score: Optional[float]
    critical_ratio: Optional[float]
    suspected_dependence: bool


@dataclass(frozen=True)
class ControlValidation:
    """Control checks across a session set."""
    sessions: Tuple[SessionControlCheck, ...]
    control_trials: int
    control_hits: int
    control_rate: Optional[float]
    control_z: Optional[StatisticalResult]
    pooled_correlation: Optional[float]
    pooled_chi_square: Optional[StatisticalResult]
    mean_health_score: Optional[float]
    flagged_sessions: Tuple[str, ...]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def bit_contingency(subject: Sequence[int], control: Sequence[int]) -> Tuple[int, int, int, int]:
    """
    2x2 counts of paired bits.

    Returns (a, b, c, d) for the table
        [[subject 1 & control 1, subject 1 & control 0],
         [subject 0 & control 1, subject 0 & control 0]]
    """
    if len(subject) != len(control):
        raise ValueError(f"Bit sequences differ in length: {len(subject)} vs {len(control)}")
    a = b = c = d = 0
    for s, g in zip(subject, control):
        if s and g:
            a += 1
        elif s:
            b += 1
        elif g:
            c += 1
        else:
            d += 1
    return a, b, c, d


def control_rate_test(hits: int, n: int, alpha: float = 0.05) -> Optional[StatisticalResult]:
    """Normal z-test of a control hit count against 0.5."""
    if n <= 0:
        return None
    z = binom_z(hits, n, 0.5)
    return make_result('control_z', z, two_sided_p(z), alpha, n=n,
                       effect_size=hits / n - 0.5, effect_size_name='rate_minus_chance')


def check_session(session: Session, config: Optional[AnalysisConfig] = None) -> SessionControlCheck:
    """
    Run the control checks for one session.

    The session is flagged when |r| between paired subject and control
    bits reaches `dependence_r_threshold`, or the 2x2 chi-square p falls
    below `independence_alpha`.
    """
    config = config or AnalysisConfig()
    subject, control = session.paired_bits()

    correlation = pearson_correlation(subject, control, config.min_correlation_n)
    chi_square = None
    if subject:
        chi_square = chi_square_2x2(*bit_contingency(subject, control), alpha=config.alpha,
                                    min_total=config.min_chi_square_total)

    rate_blocks = [b for b in session.blocks if b.n > 0 and b.control_hits is not None]
    cross = max_cross_correlation([b.hit_rate for b in rate_blocks],
                                  [b.control_rate for b in rate_blocks])

    control_trials = sum(b.n for b in rate_blocks)
    control_hits = sum(b.control_hits for b in rate_blocks)
    control_rate = control_hits / control_trials if control_trials > 0 else None

    data_completion = len(rate_blocks) / len(session.blocks) if session.blocks else None
    health = None
    critical_ratio = None
    if control_rate is not None and data_completion is not None:
        proximity = 1 - abs(control_rate - 0.5) * 2
        health = data_completion * 0.6 + proximity * 0.4
        if session.hit_rate is not None:
            critical_ratio = abs(session.hit_rate - 0.5) / max(abs(control_rate - 0.5), 0.001)

    suspected = (
        (correlation is not None and abs(correlation) >= config.dependence_r_threshold)
        or (chi_square is not None and chi_square.p_value < config.independence_alpha)
    )

    return SessionControlCheck(
        session_id=session.session_id,
        paired_bits=len(subject),
        correlation=correlation,
        chi_square=chi_square,
        cross_correlation=cross,
        control_trials=control_trials,
        control_hits=control_hits,
        control_rate=control_rate,
        control_z=control_rate_test(control_hits, control_trials, config.alpha),
        data_completion=data_completion,
        health_score=health,
        critical_ratio=critical_ratio,
        suspected_dependence=suspected,
    )


def validate_controls(
    sessions: Sequence[Session],
    config: Optional[AnalysisConfig] = None,
) -> ControlValidation:
    """
    Per-session control checks plus pooled control-stream statistics.

    Args:
        sessions: Filtered sessions
        config: Thresholds (dependence_r_threshold, independence_alpha,
                min_chi_square_total, min_correlation_n)

    Returns:
        ControlValidation with the flagged session ids
    """
    config = config or AnalysisConfig()
    checks = [check_session(s, config) for s in sessions]

    control_trials = sum(c.control_trials for c in checks)
    control_hits = sum(c.control_hits for c in checks)

    all_subject: List[int] = []
    all_control: List[int] = []
    for session in sessions:
        subject, control = session.paired_bits()
        all_subject.extend(subject)
        all_control.extend(control)

    pooled_chi = None
    if all_subject:
        pooled_chi = chi_square_2x2(*bit_contingency(all_subject, all_control),
                                    alpha=config.alpha, min_total=config.min_chi_square_total)

    health = [c.health_score for c in checks if c.health_score is not None]
    flagged = tuple(c.session_id for c in checks if c.suspected_dependence)
    if flagged:
        logger.warning("%d session(s) show subject/control dependence: %s",
                       len(flagged), ', '.join(flagged))

    return ControlValidation(
        sessions=tuple(checks),
        control_trials=control_trials,
        control_hits=control_hits,
        control_rate=control_hits / control_trials if control_trials > 0 else None,
        control_z=control_rate_test(control_hits, control_trials, config.alpha),
        pooled_correlation=pearson_correlation(all_subject, all_control, config.min_correlation_n),
        pooled_chi_square=pooled_chi,
        mean_health_score=float(np.mean(health)) if health else None,
        flagged_sessions=flagged,
    )
