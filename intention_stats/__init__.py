"""Statistical analysis of intention-on-randomness experiments."""

__version__ = "0.3.0"
