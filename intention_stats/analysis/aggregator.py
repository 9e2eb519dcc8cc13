"""
Result aggregation for intention experiments.

Filters canonical Sessions and folds them into per-block, per-session and
pooled summaries in a single pass. Each summary is immutable; nothing here
keeps state between calls, so re-running on a new filter is just another call.
"""

import logging
import math
from collections import Counter
from dataclasses import dataclass, asdict, field
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

import numpy as np

from ..core.config import AnalysisConfig, FilterSpec
from ..core.numeric import two_sided_t_p
from ..core.records import Session
from .binomial import binomial_test, min_hits_for_significance, required_hits_normal
from .statistics import (
    StatisticalResult,
    degenerate_result,
    make_result,
    two_proportion_z_test,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BlockSummary:
    """Counts and rates for one block."""
    index: int
    n: int
    subject_hits: int
    control_hits: Optional[int]
    hit_rate: Optional[float]
    control_rate: Optional[float]
    subject_entropy: Optional[float]
    control_entropy: Optional[float]


@dataclass(frozen=True)
class SessionSummary:
    """One row per session, as shown in session tables."""
    session_id: str
    participant_id: Optional[str]
    condition: Optional[str]
    session_type: Optional[str]
    completed: Optional[bool]
    created_at: Optional[float]
    n_blocks: int
    trials: int
    subject_hits: int
    control_trials: int
    control_hits: int
    hit_rate: Optional[float]
    control_rate: Optional[float]
    delta: Optional[float]          # hit_rate - control_rate
    entropy_mean: Optional[float]
    control_entropy_mean: Optional[float]
    blocks: Tuple[BlockSummary, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class PooledSummary:
    """Trial-weighted totals over the filtered sessions."""
    n_sessions: int
    total_trials: int
    total_hits: int
    hit_rate: Optional[float]
    control_trials: int
    control_hits: int
    control_rate: Optional[float]
    delta: Optional[float]
    mean_session_rate: Optional[float]
    entropy_mean: Optional[float]
    n_entropy_blocks: int
    session_level: Optional[StatisticalResult] = None
    subject_vs_control: Optional[StatisticalResult] = None
    binomial_upper: Optional[StatisticalResult] = None
    binomial_two_sided: Optional[StatisticalResult] = None
    hits_needed_exact: Optional[int] = None
    hits_needed_normal: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class AggregateResult:
    """Output of one aggregation run."""
    filters: Dict[str, Any]
    n_sessions_input: int
    n_sessions_used: int
    sessions: Tuple[SessionSummary, ...]
    pooled: PooledSummary
    exclusions: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------

def _has_ordinal_keys(session: Session) -> bool:
    return session.participant_id is not None and session.created_at is not None


def first_session_ids(sessions: Sequence[Session]) -> Set[str]:
    """
    Ids of each participant's earliest session.

    Sessions without a participant id or creation time cannot be ordered
    and are never "first".
    """
    earliest: Dict[str, Session] = {}
    for session in sessions:
        if not _has_ordinal_keys(session):
            continue
        current = earliest.get(session.participant_id)
        key = (session.created_at, session.session_id)
        if current is None or key < (current.created_at, current.session_id):
            earliest[session.participant_id] = session
    return {s.session_id for s in earliest.values()}


def filter_sessions(sessions: Sequence[Session], filters: FilterSpec) -> List[Session]:
    """
    Apply a FilterSpec.

    A session missing the field a filter looks at is excluded by that
    filter (absence is never read as a value).
    """
    firsts = first_session_ids(sessions) if filters.session_ordinal != 'all' else set()
    kept = []

    for session in sessions:
        if filters.completion == 'completers' and session.completed is not True:
            continue
        if filters.completion == 'nonCompleters' and session.completed is not False:
            continue
        if filters.condition is not None and session.condition != filters.condition:
            continue
        if filters.session_type is not None and session.session_type != filters.session_type:
            continue
        if filters.data_source is not None and session.data_source != filters.data_source:
            continue
        if filters.session_ordinal == 'first' and session.session_id not in firsts:
            continue
        if filters.session_ordinal == 'repeat' and (
                not _has_ordinal_keys(session) or session.session_id in firsts):
            continue
        kept.append(session)

    if filters.session_weighted:
        weighted_ids = first_session_ids(kept)
        kept = [s for s in kept if s.session_id in weighted_ids]

    return kept


# ---------------------------------------------------------------------------
# Folding
# ---------------------------------------------------------------------------

def _mean_or_none(values: Sequence[float]) -> Optional[float]:
    return float(np.mean(values)) if values else None


def fold_session(session: Session, tally: Optional[Counter] = None) -> SessionSummary:
    """Fold a session's blocks into one summary row."""
    if tally is None:
        tally = Counter()

    blocks = []
    trials = hits = control_trials = control_hits = 0
    entropies: List[float] = []
    control_entropies: List[float] = []

    for block in session.blocks:
        subject_entropy = block.block_subject_entropy()
        control_entropy = block.block_control_entropy()
        blocks.append(BlockSummary(
            index=block.index,
            n=block.n,
            subject_hits=block.subject_hits,
            control_hits=block.control_hits,
            hit_rate=block.hit_rate,
            control_rate=block.control_rate,
            subject_entropy=subject_entropy,
            control_entropy=control_entropy,
        ))

        trials += block.n
        hits += block.subject_hits
        if block.control_hits is not None:
            control_trials += block.n
            control_hits += block.control_hits
        else:
            tally['block_control_excluded'] += 1
        if subject_entropy is not None:
            entropies.append(subject_entropy)
        if control_entropy is not None:
            control_entropies.append(control_entropy)

    hit_rate = hits / trials if trials > 0 else None
    control_rate = control_hits / control_trials if control_trials > 0 else None
    if trials == 0:
        tally['session_without_trials'] += 1

    return SessionSummary(
        session_id=session.session_id,
        participant_id=session.participant_id,
        condition=session.condition,
        session_type=session.session_type,
        completed=session.completed,
        created_at=session.created_at,
        n_blocks=len(blocks),
        trials=trials,
        subject_hits=hits,
        control_trials=control_trials,
        control_hits=control_hits,
        hit_rate=hit_rate,
        control_rate=control_rate,
        delta=hit_rate - control_rate if hit_rate is not None and control_rate is not None else None,
        entropy_mean=_mean_or_none(entropies),
        control_entropy_mean=_mean_or_none(control_entropies),
        blocks=tuple(blocks),
    )


def session_level_test(summaries: Sequence[SessionSummary],
                       alpha: float = 0.05) -> Optional[StatisticalResult]:
    """
    Clustered test of the trial-weighted mean hit rate against 0.5.

    The mean weights sessions by trials; the standard error uses the
    unweighted spread of session rates around that mean, with n - 1 df.
    Returns None with fewer than 2 usable sessions.
    """
    valid = [s for s in summaries if s.hit_rate is not None and s.trials > 0]
    n = len(valid)
    if n < 2:
        return None

    total_trials = sum(s.trials for s in valid)
    mean_rate = sum(s.hit_rate * s.trials for s in valid) / total_trials
    variance = sum((s.hit_rate - mean_rate) ** 2 for s in valid) / (n - 1)
    se = math.sqrt(variance / n)
    extras = {'mean_rate': mean_rate, 'se': se, 'total_trials': total_trials}

    if se == 0:
        return degenerate_result('session_level_t', alpha, df=n - 1, n=n, extras=extras)

    t = (mean_rate - 0.5) / se
    return make_result('session_level_t', t, two_sided_t_p(t, n - 1), alpha,
                       df=n - 1, n=n, effect_size=mean_rate - 0.5,
                       effect_size_name='rate_minus_chance', extras=extras)


def pool_summaries(summaries: Sequence[SessionSummary], alpha: float = 0.05) -> PooledSummary:
    """Pool session rows into trial-weighted totals and the pooled tests."""
    total_trials = sum(s.trials for s in summaries)
    total_hits = sum(s.subject_hits for s in summaries)
    control_trials = sum(s.control_trials for s in summaries)
    control_hits = sum(s.control_hits for s in summaries)

    hit_rate = total_hits / total_trials if total_trials > 0 else None
    control_rate = control_hits / control_trials if control_trials > 0 else None
    session_rates = [s.hit_rate for s in summaries if s.hit_rate is not None]
    block_entropies = [b.subject_entropy for s in summaries for b in s.blocks
                       if b.subject_entropy is not None]

    return PooledSummary(
        n_sessions=len(summaries),
        total_trials=total_trials,
        total_hits=total_hits,
        hit_rate=hit_rate,
        control_trials=control_trials,
        control_hits=control_hits,
        control_rate=control_rate,
        delta=hit_rate - control_rate if hit_rate is not None and control_rate is not None else None,
        mean_session_rate=_mean_or_none(session_rates),
        entropy_mean=_mean_or_none(block_entropies),
        n_entropy_blocks=len(block_entropies),
        session_level=session_level_test(summaries, alpha),
        subject_vs_control=two_proportion_z_test(total_hits, total_trials,
                                                 control_hits, control_trials, alpha),
        binomial_upper=binomial_test(total_hits, total_trials, 0.5, 'greater', alpha),
        binomial_two_sided=binomial_test(total_hits, total_trials, 0.5, 'two-sided', alpha),
        hits_needed_exact=min_hits_for_significance(total_trials, 0.5, alpha),
        hits_needed_normal=required_hits_normal(total_trials, alpha) if total_trials > 0 else None,
    )


def summarize_selected(
    selected: Sequence[Session],
    config: Optional[AnalysisConfig] = None,
    n_input: Optional[int] = None,
) -> AggregateResult:
    """
    Fold and pool sessions that have already been filtered.

    Args:
        selected: Sessions that passed `config.filters`
        config: Analysis config
        n_input: Size of the unfiltered set, for the coverage line

    Returns:
        AggregateResult with per-session rows and pooled totals
    """
    config = config or AnalysisConfig()
    n_input = len(selected) if n_input is None else n_input

    tally: Counter = Counter()
    summaries = tuple(fold_session(s, tally) for s in selected)
    pooled = pool_summaries(summaries, config.alpha)

    logger.info("Aggregated %d of %d sessions (%d trials)",
                len(selected), n_input, pooled.total_trials)

    return AggregateResult(
        filters=config.filters.to_dict(),
        n_sessions_input=n_input,
        n_sessions_used=len(selected),
        sessions=summaries,
        pooled=pooled,
        exclusions=dict(sorted(tally.items())),
    )


def aggregate(
    sessions: Sequence[Session],
    config: Optional[AnalysisConfig] = None,
) -> AggregateResult:
    """
    Filter, fold and pool sessions.

    Args:
        sessions: Canonical sessions
        config: Analysis config; its `filters` select the sessions

    Returns:
        AggregateResult with per-session rows and pooled totals
    """
    config = config or AnalysisConfig()
    selected = filter_sessions(sessions, config.filters)
    return summarize_selected(selected, config, n_input=len(sessions))
