"""Analysis module for intention experiments.

Provides tools for:
- Hypothesis tests, confidence intervals and multiple-comparison corrections
- Session aggregation and the confirmatory group comparison
- Exploratory dynamics, entropy and hold-duration analyses
- Control-stream validation and randomness audits
- Report assembly
"""

from .statistics import (
    StatisticalResult,
    ConfidenceInterval,
    compute_confidence_interval,
    bootstrap_ci,
    one_sample_t_test,
    paired_t_test,
    welch_t_test,
    two_proportion_z_test,
    chi_square_2x2,
    sign_flip_permutation_test,
    cohens_d,
)
from .binomial import binomial_test, min_hits_for_significance, required_hits_normal
from .corrections import CorrectionSet, holm_bonferroni, benjamini_hochberg, bonferroni_correction
from .aggregator import (
    SessionSummary,
    PooledSummary,
    AggregateResult,
    filter_sessions,
    aggregate,
)
from .primary import PrimaryAnalysis, run_primary_analysis
from .dynamics import analyze_block_dynamics, analyze_trial_dynamics
from .entropy import analyze_entropy
from .hold import hold_duration_report
from .controls import ControlValidation, validate_controls
from .randomness import audit_bits, audit_sessions
from .report import AnalysisReport, build_report, to_jsonable

__all__ = [
    # Statistics
    'StatisticalResult',
    'ConfidenceInterval',
    'compute_confidence_interval',
    'bootstrap_ci',
    'one_sample_t_test',
    'paired_t_test',
    'welch_t_test',
    'two_proportion_z_test',
    'chi_square_2x2',
    'sign_flip_permutation_test',
    'cohens_d',
    'binomial_test',
    'min_hits_for_significance',
    'required_hits_normal',
    # Corrections
    'CorrectionSet',
    'holm_bonferroni',
    'benjamini_hochberg',
    'bonferroni_correction',
    # Aggregation
    'SessionSummary',
    'PooledSummary',
    'AggregateResult',
    'filter_sessions',
    'aggregate',
    # Confirmatory
    'PrimaryAnalysis',
    'run_primary_analysis',
    # Exploratory
    'analyze_block_dynamics',
    'analyze_trial_dynamics',
    'analyze_entropy',
    'hold_duration_report',
    # Controls
    'ControlValidation',
    'validate_controls',
    'audit_bits',
    'audit_sessions',
    # Report
    'AnalysisReport',
    'build_report',
    'to_jsonable',
]
