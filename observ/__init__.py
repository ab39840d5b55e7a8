"""Observ: versioned prompt management and dataset evaluation."""

__version__ = "0.1.0"
