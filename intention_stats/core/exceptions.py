"""
Custom exceptions for intention_stats.

Only configuration and snapshot loading raise to the caller; statistical
routines absorb insufficient or degenerate data into their results.
"""


class IntentionStatsError(Exception):
    """Base exception for intention_stats."""
    pass


class ConfigurationError(IntentionStatsError):
    """Raised when an analysis configuration is invalid or missing."""
    pass


class SnapshotError(IntentionStatsError):
    """Raised when a session snapshot cannot be read or has the wrong shape."""
    pass
