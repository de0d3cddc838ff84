"""CLI interface for Content-Experiments.

This module provides the command-line interface for managing experiments.
"""

from .main import app

__all__ = [
    "app",
]
