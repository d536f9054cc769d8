"""Operator utilities for the puppet checkout."""

__version__ = "0.3.0"
