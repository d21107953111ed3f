"""Cross-module intelligence and correlation engine."""

__version__ = "0.1.0"
