"""Records, numeric primitives, sequence statistics, configuration and I/O."""

from .exceptions import IntentionStatsError, ConfigurationError, SnapshotError
from .records import Trial, Block, Session, TemporalEntropy, Coverage, normalize_sessions
from .config import AnalysisConfig, FilterSpec, load_config
from .snapshot import load_snapshot, load_sessions, write_report

__all__ = [
    # Errors
    'IntentionStatsError',
    'ConfigurationError',
    'SnapshotError',
    # Records
    'Trial',
    'Block',
    'Session',
    'TemporalEntropy',
    'Coverage',
    'normalize_sessions',
    # Configuration
    'AnalysisConfig',
    'FilterSpec',
    'load_config',
    # I/O
    'load_snapshot',
    'load_sessions',
    'write_report',
]
