"""Configuration-driven command dispatcher with danger gating."""

__version__ = "0.1.0"
