"""
Canonical records for experiment data and the adapter that builds them.

The document store holds sessions in several historical shapes (different
field names for the same quantity, aggregate-only sessions, optional bit
arrays). `normalize_sessions` maps all of them onto one immutable
Session -> Block -> Trial hierarchy before any statistics run, and tallies
every record or field it had to exclude.
"""

import logging
import math
from collections import Counter
from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from .sequences import shannon_entropy

logger = logging.getLogger(__name__)


# Canonical session types for the primary comparison
SESSION_TYPE_ALIASES = {
    'human': 'human',
    'ai': 'ai_agent',
    'ai_agent': 'ai_agent',
    'agent': 'ai_agent',
    'baseline': 'baseline',
    'auto': 'baseline',
}


@dataclass(frozen=True)
class Trial:
    """A single press: one subject bit and its matched control bit."""
    subject_bit: int
    control_bit: Optional[int]
    block_index: int
    trial_index: int
    hold_duration_ms: Optional[float] = None
    timestamp: Optional[float] = None

    def __post_init__(self):
        if self.subject_bit not in (0, 1):
            raise ValueError(f"subject_bit must be 0 or 1, got {self.subject_bit!r}")
        if self.control_bit is not None and self.control_bit not in (0, 1):
            raise ValueError(f"control_bit must be 0 or 1, got {self.control_bit!r}")


@dataclass(frozen=True)
class Block:
    """
    One batch of trials drawn from a single random-source fetch ("minute").

    `control_hits` is None when the record carried no control count; such a
    block is left out of control-stream aggregates rather than counted as 0.
    """
    index: int
    n: int
    subject_hits: int
    control_hits: Optional[int] = None
    subject_bits: Optional[Tuple[int, ...]] = None
    control_bits: Optional[Tuple[int, ...]] = None
    subject_entropy: Optional[float] = None
    control_entropy: Optional[float] = None
    entropy_windows: Tuple[float, ...] = ()
    trials: Tuple[Trial, ...] = ()
    mapping_type: Optional[str] = None

    def __post_init__(self):
        if self.n < 0:
            raise ValueError(f"Block {self.index}: n must be >= 0, got {self.n}")
        if not 0 <= self.subject_hits <= self.n:
            raise ValueError(f"Block {self.index}: subject_hits {self.subject_hits} not in [0, {self.n}]")
        if self.control_hits is not None and not 0 <= self.control_hits <= self.n:
            raise ValueError(f"Block {self.index}: control_hits {self.control_hits} not in [0, {self.n}]")
        for name in ('subject_bits', 'control_bits'):
            bits = getattr(self, name)
            if bits is None:
                continue
            if len(bits) != self.n:
                raise ValueError(f"Block {self.index}: len({name})={len(bits)} != n={self.n}")
            if any(b not in (0, 1) for b in bits):
                raise ValueError(f"Block {self.index}: {name} must contain only 0/1")

    @property
    def hit_rate(self) -> Optional[float]:
        return self.subject_hits / self.n if self.n > 0 else None

    @property
    def control_rate(self) -> Optional[float]:
        if self.control_hits is None or self.n == 0:
            return None
        return self.control_hits / self.n

    def block_subject_entropy(self) -> Optional[float]:
        """Stored subject entropy, else computed from raw bits, else None."""
        if self.subject_entropy is not None:
            return self.subject_entropy
        if self.subject_bits:
            return shannon_entropy(self.subject_bits)
        return None

    def block_control_entropy(self) -> Optional[float]:
        """Stored control entropy, else computed from raw bits, else None."""
        if self.control_entropy is not None:
            return self.control_entropy
        if self.control_bits:
            return shannon_entropy(self.control_bits)
        return None


@dataclass(frozen=True)
class TemporalEntropy:
    """Entropy of the session bit stream split into 2 and 3 equal windows."""
    subject_k2: Optional[Tuple[float, ...]] = None
    subject_k3: Optional[Tuple[float, ...]] = None
    control_k2: Optional[Tuple[float, ...]] = None
    control_k3: Optional[Tuple[float, ...]] = None
    subject_bits_count: Optional[int] = None


@dataclass(frozen=True)
class Session:
    """One run of the experiment by one participant."""
    session_id: str
    blocks: Tuple[Block, ...] = ()
    participant_id: Optional[str] = None
    condition: Optional[str] = None
    session_type: Optional[str] = None
    completed: Optional[bool] = None
    created_at: Optional[float] = None  # epoch seconds
    exit_reason: Optional[str] = None
    data_source: Optional[str] = None
    temporal_entropy: Optional[TemporalEntropy] = None

    def __post_init__(self):
        # Blocks are always held in chronological (index) order
        ordered = tuple(sorted(self.blocks, key=lambda b: b.index))
        object.__setattr__(self, 'blocks', ordered)

    @property
    def total_trials(self) -> int:
        return sum(b.n for b in self.blocks)

    @property
    def total_hits(self) -> int:
        return sum(b.subject_hits for b in self.blocks)

    @property
    def hit_rate(self) -> Optional[float]:
        """Trial-weighted hit rate over all blocks."""
        trials = self.total_trials
        return self.total_hits / trials if trials > 0 else None

    def subject_bits(self) -> List[int]:
        """Concatenated subject bits of every block that carries them."""
        bits: List[int] = []
        for block in self.blocks:
            if block.subject_bits:
                bits.extend(block.subject_bits)
        return bits

    def paired_bits(self) -> Tuple[List[int], List[int]]:
        """Subject and control bits from blocks that carry both halves."""
        subject: List[int] = []
        control: List[int] = []
        for block in self.blocks:
            if block.subject_bits and block.control_bits:
                subject.extend(block.subject_bits)
                control.extend(block.control_bits)
        return subject, control

    def trials(self) -> List[Trial]:
        """All per-trial rows, in block order."""
        rows: List[Trial] = []
        for block in self.blocks:
            rows.extend(block.trials)
        return rows


@dataclass(frozen=True)
class Coverage:
    """Data-quality tally from normalizing a snapshot."""
    sessions_seen: int = 0
    sessions_kept: int = 0
    blocks_seen: int = 0
    blocks_kept: int = 0
    exclusions: Dict[str, int] = field(default_factory=dict)

    @property
    def sessions_skipped(self) -> int:
        return self.sessions_seen - self.sessions_kept

    @property
    def blocks_skipped(self) -> int:
        return self.blocks_seen - self.blocks_kept

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['sessions_skipped'] = self.sessions_skipped
        data['blocks_skipped'] = self.blocks_skipped
        return data


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------

def _first(raw: Dict[str, Any], *keys: str) -> Any:
    """Value of the first key present with a non-None value."""
    for key in keys:
        if '.' in key:
            value: Any = raw
            for part in key.split('.'):
                value = value.get(part) if isinstance(value, dict) else None
        else:
            value = raw.get(key)
        if value is not None:
            return value
    return None


def _as_int(value: Any) -> Optional[int]:
    """Integer view of a numeric field; None for missing or non-numeric."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value) and value == int(value):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_float(value: Any) -> Optional[float]:
    """Finite float view of a numeric field; None otherwise."""
    if isinstance(value, bool) or value is None:
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    return result if math.isfinite(result) else None


def _as_bits(value: Any) -> Optional[Tuple[int, ...]]:
    """Bits from a list of 0/1 (ints, bools or '0'/'1') or a '0101' string."""
    if value is None:
        return None
    if isinstance(value, str):
        if not value or any(ch not in '01' for ch in value):
            return None
        return tuple(int(ch) for ch in value)
    if isinstance(value, (list, tuple)):
        bits = []
        for item in value:
            bit = _as_int(int(item) if isinstance(item, bool) else item)
            if bit not in (0, 1):
                return None
            bits.append(bit)
        return tuple(bits) if bits else None
    return None


def _as_float_tuple(value: Any, length: Optional[int] = None) -> Optional[Tuple[float, ...]]:
    """Tuple of finite floats, or None if any entry is missing/non-numeric."""
    if not isinstance(value, (list, tuple)):
        return None
    values = tuple(_as_float(v) for v in value)
    if any(v is None for v in values):
        return None
    if length is not None and len(values) != length:
        return None
    return values


def parse_timestamp(value: Any) -> Optional[float]:
    """
    Epoch seconds from the timestamp shapes found in exports.

    Accepts epoch milliseconds or seconds, ISO-8601 strings, and
    Firestore-style {'seconds': ..., 'nanoseconds': ...} objects.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        # Values this large can only be milliseconds
        return float(value) / 1000.0 if abs(value) > 1e11 else float(value)
    if isinstance(value, dict):
        seconds = _as_float(_first(value, 'seconds', '_seconds'))
        if seconds is None:
            return None
        nanos = _as_float(_first(value, 'nanoseconds', '_nanoseconds')) or 0.0
        return seconds + nanos / 1e9
    if isinstance(value, str):
        text = value.strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return _as_float(text)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.timestamp()
    return None


def _window_values(raw_windows: Any) -> Tuple[float, ...]:
    """Entropy windows stored as numbers or as {'entropy': x} objects."""
    if not isinstance(raw_windows, (list, tuple)):
        return ()
    values = []
    for w in raw_windows:
        value = _as_float(w.get('entropy')) if isinstance(w, dict) else _as_float(w)
        if value is not None:
            values.append(value)
    return tuple(values)


def _normalize_trials(raw_trials: Any, block_index: int, tally: Counter) -> Tuple[Trial, ...]:
    """Per-trial rows; rows without a subject outcome are skipped."""
    if not isinstance(raw_trials, (list, tuple)):
        return ()
    trials = []
    for position, row in enumerate(raw_trials):
        if not isinstance(row, dict):
            tally['trial_malformed'] += 1
            continue
        subject = _as_int(_first(row, 'subject_bit', 'subject_hit', 'primary_is_right'))
        control = _as_int(_first(row, 'control_bit', 'ghost_bit', 'demon_hit'))
        if subject not in (0, 1):
            tally['trial_malformed'] += 1
            continue
        if control not in (0, 1):
            control = None
        trial_index = _as_int(_first(row, 'trial_index', 'idx'))
        trials.append(Trial(
            subject_bit=subject,
            control_bit=control,
            block_index=block_index,
            trial_index=trial_index if trial_index is not None else position,
            hold_duration_ms=_as_float(_first(row, 'hold_duration_ms', 'holdDurationMs')),
            timestamp=parse_timestamp(_first(row, 'timestamp', 'ts')),
        ))
    return tuple(trials)


def normalize_block(raw: Dict[str, Any], position: int, tally: Counter) -> Optional[Block]:
    """
    Build a Block from one stored block/minute document.

    Returns None (and tallies the reason) when the counts are missing or
    violate the block invariants.
    """
    if not isinstance(raw, dict):
        tally['block_not_mapping'] += 1
        return None

    n = _as_int(_first(raw, 'n', 'trials_count', 'n_trials', 'trials'))
    hits = _as_int(_first(raw, 'hits', 'subject_hits'))
    if n is None or hits is None:
        tally['block_missing_counts'] += 1
        logger.debug("Skipping block %s: missing n/hits", position)
        return None

    index = _as_int(_first(raw, 'idx', 'block_index', 'index'))
    if index is None:
        index = position

    control_hits = _as_int(_first(raw, 'demon_hits', 'ghost_hits', 'control_hits'))
    if control_hits is None:
        tally['control_hits_missing'] += 1

    subject_bits = _as_bits(_first(raw, 'trial_data.subject_bits', 'subjectBitSequence', 'subject_bits'))
    control_bits = _as_bits(_first(raw, 'trial_data.demon_bits', 'ghostBitSequence', 'control_bits'))
    if subject_bits is not None and len(subject_bits) != n:
        tally['bits_length_mismatch'] += 1
        subject_bits = None
    if control_bits is not None and len(control_bits) != n:
        tally['bits_length_mismatch'] += 1
        control_bits = None

    try:
        return Block(
            index=index,
            n=n,
            subject_hits=hits,
            control_hits=control_hits,
            subject_bits=subject_bits,
            control_bits=control_bits,
            subject_entropy=_as_float(_first(raw, 'entropy.block_entropy_subj', 'subject_entropy')),
            control_entropy=_as_float(_first(raw, 'entropy.block_entropy_ghost', 'control_entropy')),
            entropy_windows=_window_values(_first(raw, 'entropy.new_windows_subj', 'entropy_windows')),
            trials=_normalize_trials(raw.get('trials'), index, tally),
            mapping_type=_first(raw, 'mapping_type'),
        )
    except ValueError as e:
        tally['block_invalid'] += 1
        logger.debug("Skipping block %s: %s", position, e)
        return None


def _normalize_temporal(raw: Dict[str, Any]) -> Optional[TemporalEntropy]:
    temporal = _first(raw, 'entropy.temporal', 'temporal_entropy')
    if not isinstance(temporal, dict):
        return None
    result = TemporalEntropy(
        subject_k2=_as_float_tuple(temporal.get('entropy_k2'), 2),
        subject_k3=_as_float_tuple(temporal.get('entropy_k3'), 3),
        control_k2=_as_float_tuple(temporal.get('ghost_entropy_k2'), 2),
        control_k3=_as_float_tuple(temporal.get('ghost_entropy_k3'), 3),
        subject_bits_count=_as_int(temporal.get('subj_bits_count')),
    )
    if all(v is None for v in (result.subject_k2, result.subject_k3,
                               result.control_k2, result.control_k3)):
        return None
    return result


def _completion(raw: Dict[str, Any]) -> Optional[bool]:
    completed = raw.get('completed')
    if isinstance(completed, bool):
        return completed
    exited = raw.get('exitedEarly', raw.get('exited_early'))
    if isinstance(exited, bool):
        return not exited
    return None


def _session_type(raw: Dict[str, Any]) -> Optional[str]:
    value = _first(raw, 'session_type', 'mode')
    if not isinstance(value, str):
        return None
    return SESSION_TYPE_ALIASES.get(value.lower(), value.lower())


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def normalize_session(raw: Dict[str, Any], position: int, tally: Counter) -> Optional[Session]:
    """
    Build a Session (and its Blocks) from one stored session document.

    Aggregate-only sessions (no block list, only `aggregates` totals) become
    a single synthetic block without bit data.
    """
    if not isinstance(raw, dict):
        tally['session_not_mapping'] += 1
        return None

    session_id = _optional_str(_first(raw, 'id', 'session_id'))
    if session_id is None:
        session_id = f'session-{position}'
        tally['session_id_missing'] += 1

    raw_blocks = _first(raw, 'minutes', 'blocks')
    blocks: List[Block] = []
    if isinstance(raw_blocks, (list, tuple)) and raw_blocks:
        tally['_blocks_seen'] += len(raw_blocks)
        for i, raw_block in enumerate(raw_blocks):
            block = normalize_block(raw_block, i, tally)
            if block is not None:
                blocks.append(block)
    elif isinstance(raw.get('aggregates'), dict):
        agg = raw['aggregates']
        tally['_blocks_seen'] += 1
        block = normalize_block({
            'idx': 0,
            'n': agg.get('totalTrials'),
            'hits': agg.get('totalHits'),
            'ghost_hits': agg.get('totalGhostHits'),
        }, 0, tally)
        if block is not None:
            blocks.append(block)

    return Session(
        session_id=session_id,
        blocks=tuple(blocks),
        participant_id=_optional_str(_first(raw, 'participant_id', 'participantId')),
        condition=_optional_str(_first(raw, 'prime_condition', 'condition')),
        session_type=_session_type(raw),
        completed=_completion(raw),
        created_at=parse_timestamp(_first(raw, 'createdAt', 'created_at', 'timestamp')),
        exit_reason=_optional_str(_first(raw, 'exit_reason', 'exitReason')),
        data_source=_optional_str(_first(raw, 'data_source', 'dataSource')),
        temporal_entropy=_normalize_temporal(raw),
    )


def normalize_sessions(raws: Iterable[Dict[str, Any]]) -> Tuple[List[Session], Coverage]:
    """
    Normalize a snapshot of stored sessions.

    Args:
        raws: Session documents as exported from the store

    Returns:
        (sessions, coverage) where coverage counts every skipped record and
        every excluded field by reason
    """
    tally: Counter = Counter()
    sessions: List[Session] = []
    seen = 0

    for position, raw in enumerate(raws):
        seen += 1
        session = normalize_session(raw, position, tally)
        if session is not None:
            sessions.append(session)

    blocks_seen = tally.pop('_blocks_seen', 0)
    blocks_kept = sum(len(s.blocks) for s in sessions)
    coverage = Coverage(
        sessions_seen=seen,
        sessions_kept=len(sessions),
        blocks_seen=blocks_seen,
        blocks_kept=blocks_kept,
        exclusions=dict(sorted(tally.items())),
    )

    logger.info(
        "Normalized %d/%d sessions, %d/%d blocks (%d exclusion reasons)",
        coverage.sessions_kept, seen, blocks_kept, blocks_seen, len(coverage.exclusions),
    )
    return sessions, coverage


def sessions_from_records(sessions: Sequence[Session]) -> Tuple[List[Session], Coverage]:
    """Pass-through for callers that already hold canonical Sessions."""
    blocks = sum(len(s.blocks) for s in sessions)
    return list(sessions), Coverage(
        sessions_seen=len(sessions), sessions_kept=len(sessions),
        blocks_seen=blocks, blocks_kept=blocks,
    )
