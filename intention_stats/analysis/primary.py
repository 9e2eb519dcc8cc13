"""
Primary confirmatory analysis.

A fixed, pre-declared set of comparisons between condition groups (by
default human, AI agent and baseline sessions): per-group descriptives of
session hit rates, every pairwise Welch t-test, Holm-Bonferroni over the
whole family, Cohen's d and a minimum-detectable-effect estimate.

This is the only output of a report meant to be read as confirmatory.
"""

import math
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..core.config import AnalysisConfig
from .aggregator import SessionSummary
from .corrections import CorrectionSet, holm_bonferroni
from .statistics import (
    StatisticalResult,
    compute_confidence_interval,
    interpret_effect_size,
    welch_t_test,
)

# z_(1 - alpha/2) + z_(power) for alpha = 0.05 and 80% power
_MDE_FACTOR = 2.8


@dataclass(frozen=True)
class GroupStats:
    """Descriptives of session-level hit rates in one group."""
    group: str
    n: int
    mean: Optional[float]
    sd: Optional[float]
    se: Optional[float]
    ci_lower: Optional[float]
    ci_upper: Optional[float]
    total_trials: int


@dataclass(frozen=True)
class PairwiseComparison:
    """Result of comparing two groups."""
    group_a: str
    group_b: str
    n_a: int
    n_b: int
    mean_a: Optional[float]
    mean_b: Optional[float]
    difference: Optional[float]  # mean_a - mean_b
    p_value: float
    p_value_adjusted: float
    adjusted_alpha: float
    rank: int
    significant: bool  # After correction
    effect_size: Optional[float]
    effect_label: str
    mde: Optional[float]
    test_name: str
    result: Optional[StatisticalResult] = None


@dataclass(frozen=True)
class PrimaryAnalysis:
    """Confirmatory group comparison."""
    group_field: str
    groups: Tuple[GroupStats, ...]
    comparisons: Tuple[PairwiseComparison, ...]
    correction: CorrectionSet
    alpha: float
    family: str = 'confirmatory'
    confirmatory: bool = True

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['correction'] = self.correction.to_dict()
        return data


def group_descriptives(group: str, summaries: Sequence[SessionSummary]) -> GroupStats:
    """Descriptives of the hit rates of sessions that have trials."""
    rates = [s.hit_rate for s in summaries if s.hit_rate is not None]
    total_trials = sum(s.trials for s in summaries)
    if not rates:
        return GroupStats(group=group, n=0, mean=None, sd=None, se=None,
                          ci_lower=None, ci_upper=None, total_trials=total_trials)

    ci = compute_confidence_interval(rates)
    n = len(rates)
    return GroupStats(
        group=group,
        n=n,
        mean=ci.mean,
        sd=ci.std if n > 1 else None,
        se=ci.std / math.sqrt(n) if n > 1 else None,
        ci_lower=ci.ci_lower if n > 1 else None,
        ci_upper=ci.ci_upper if n > 1 else None,
        total_trials=total_trials,
    )


def minimum_detectable_effect(n_a: int, n_b: int) -> Optional[float]:
    """
    Smallest Cohen's d detectable with 80% power at alpha = 0.05.

    MDE ~= 2.8 / sqrt(n_h) with n_h the harmonic mean of the group sizes.
    """
    if n_a <= 0 or n_b <= 0:
        return None
    n_harmonic = 2.0 / (1.0 / n_a + 1.0 / n_b)
    return _MDE_FACTOR / math.sqrt(n_harmonic)


def group_sessions(
    summaries: Sequence[SessionSummary],
    groups: Sequence[str],
) -> Dict[str, List[SessionSummary]]:
    """Sessions per declared group; sessions with no group are left out."""
    grouped: Dict[str, List[SessionSummary]] = {g: [] for g in groups}
    for summary in summaries:
        if summary.session_type in grouped:
            grouped[summary.session_type].append(summary)
    return grouped


def run_primary_analysis(
    summaries: Sequence[SessionSummary],
    config: Optional[AnalysisConfig] = None,
) -> PrimaryAnalysis:
    """
    Run the pre-declared pairwise comparison family.

    Every pair of `config.primary_groups` is part of the family even when a
    group is too small to test: such a comparison enters the Holm step with
    p = 1, so the family size never depends on the data.

    Args:
        summaries: Session rows (typically AggregateResult.sessions)
        config: Analysis config (alpha, groups, minimum group size)

    Returns:
        PrimaryAnalysis with group stats and Holm-corrected comparisons
    """
    config = config or AnalysisConfig()
    groups = list(config.primary_groups)
    grouped = group_sessions(summaries, groups)
    stats = {g: group_descriptives(g, grouped[g]) for g in groups}

    pairs = []
    tests: List[Tuple[str, Any]] = []
    for i, group_a in enumerate(groups):
        for group_b in groups[i + 1:]:
            rates_a = [s.hit_rate for s in grouped[group_a] if s.hit_rate is not None]
            rates_b = [s.hit_rate for s in grouped[group_b] if s.hit_rate is not None]
            result = None
            if (len(rates_a) >= config.min_sessions_per_group
                    and len(rates_b) >= config.min_sessions_per_group):
                result = welch_t_test(rates_a, rates_b, config.alpha)
            label = f'{group_a}_vs_{group_b}'
            pairs.append((group_a, group_b, result))
            tests.append((label, result if result is not None else 1.0))

    correction = holm_bonferroni(tests, config.alpha, family='confirmatory')

    comparisons = []
    for (group_a, group_b, result), member in zip(pairs, correction.members):
        a, b = stats[group_a], stats[group_b]
        difference = a.mean - b.mean if a.mean is not None and b.mean is not None else None
        effect = result.effect_size if result is not None else None
        comparisons.append(PairwiseComparison(
            group_a=group_a,
            group_b=group_b,
            n_a=a.n,
            n_b=b.n,
            mean_a=a.mean,
            mean_b=b.mean,
            difference=difference,
            p_value=member.raw_p,
            p_value_adjusted=member.adjusted_p,
            adjusted_alpha=member.adjusted_alpha,
            rank=member.rank,
            significant=member.significant and result is not None,
            effect_size=effect,
            effect_label=interpret_effect_size(effect),
            mde=minimum_detectable_effect(a.n, b.n),
            test_name=result.test_name if result is not None else 'insufficient_data',
            result=result,
        ))

    return PrimaryAnalysis(
        group_field='session_type',
        groups=tuple(stats[g] for g in groups),
        comparisons=tuple(comparisons),
        correction=correction,
        alpha=config.alpha,
    )
