"""
Report assembly.

Runs the whole pipeline on one set of sessions and shapes the results into
a single nested object:

- coverage: what the snapshot adapter kept and skipped
- aggregate: per-session rows and pooled totals
- confirmatory: the primary group comparison, Holm-corrected as one family
- exploratory: dynamics, entropy and hold-duration analyses, each tested on
  its own (corrections scoped to the contrasts within a single test)
- controls: control-stream validation and the randomness audit

`AnalysisReport.to_dict()` contains only plain JSON values.
"""

import logging
import math
from dataclasses import dataclass, fields, is_dataclass
from typing import Any, Dict, Optional, Sequence

import numpy as np

from ..core.config import AnalysisConfig
from ..core.records import Coverage, Session
from .aggregator import AggregateResult, filter_sessions, summarize_selected
from .controls import ControlValidation, validate_controls
from .dynamics import analyze_block_dynamics, analyze_trial_dynamics
from .entropy import analyze_entropy
from .hold import hold_duration_report
from .primary import PrimaryAnalysis, run_primary_analysis
from .randomness import audit_sessions

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


def to_jsonable(obj: Any) -> Any:
    """
    Convert a result tree into plain JSON values.

    Dataclasses become dicts (their `to_dict()` when they have one), tuples
    become lists, numpy scalars and arrays become Python values, and
    non-finite floats become None.
    """
    if obj is None or isinstance(obj, (bool, str)):
        return obj
    if isinstance(obj, np.generic):
        return to_jsonable(obj.item())
    if isinstance(obj, int):
        return obj
    if isinstance(obj, float):
        return obj if math.isfinite(obj) else None
    if isinstance(obj, np.ndarray):
        return to_jsonable(obj.tolist())
    if is_dataclass(obj) and not isinstance(obj, type):
        if hasattr(obj, 'to_dict'):
            return to_jsonable(obj.to_dict())
        return {f.name: to_jsonable(getattr(obj, f.name)) for f in fields(obj)}
    if isinstance(obj, dict):
        return {str(key): to_jsonable(value) for key, value in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_jsonable(item) for item in obj]
    raise TypeError(f"Cannot serialize {type(obj).__name__} into a report")


@dataclass(frozen=True)
class AnalysisReport:
    """Everything one analysis run produces."""
    coverage: Optional[Coverage]
    config: AnalysisConfig
    aggregate: AggregateResult
    confirmatory: PrimaryAnalysis
    exploratory: Dict[str, Any]
    controls: ControlValidation
    randomness: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'schema_version': SCHEMA_VERSION,
            'coverage': to_jsonable(self.coverage),
            'config': to_jsonable(self.config),
            'aggregate': to_jsonable(self.aggregate),
            'confirmatory': to_jsonable(self.confirmatory),
            'exploratory': to_jsonable(self.exploratory),
            'controls': {
                'validation': to_jsonable(self.controls),
                'randomness': to_jsonable(self.randomness),
            },
        }


def build_report(
    sessions: Sequence[Session],
    config: Optional[AnalysisConfig] = None,
    coverage: Optional[Coverage] = None,
) -> AnalysisReport:
    """
    Run every analysis on the sessions selected by `config.filters`.

    Args:
        sessions: Canonical sessions (e.g. from `load_sessions`)
        config: Analysis configuration; defaults when None
        coverage: Adapter coverage to carry into the report

    Returns:
        AnalysisReport
    """
    config = config or AnalysisConfig()
    selected = filter_sessions(sessions, config.filters)
    aggregate = summarize_selected(selected, config, n_input=len(sessions))

    confirmatory = run_primary_analysis(aggregate.sessions, config)

    exploratory = {
        'family': 'exploratory',
        'correction_scope': 'within_test',
        'block_dynamics': analyze_block_dynamics(selected, config),
        'trial_dynamics': analyze_trial_dynamics(selected, config),
        'entropy': analyze_entropy(selected, aggregate.sessions, config),
        'hold_duration': hold_duration_report(selected, config),
    }

    controls = validate_controls(selected, config)
    randomness = audit_sessions(selected)

    logger.info("Report built: %d sessions, %d confirmatory comparisons, %d flagged",
                len(selected), len(confirmatory.comparisons), len(controls.flagged_sessions))

    return AnalysisReport(
        coverage=coverage,
        config=config,
        aggregate=aggregate,
        confirmatory=confirmatory,
        exploratory=exploratory,
        controls=controls,
        randomness=randomness,
    )
