"""Per-parameter animation networks driven by streaming audio analysis."""

__version__ = "0.1.0"
