"""Content-Experiments - A/B and multivariate testing engine for content.

Defines content variants, assigns visitors to them deterministically,
aggregates conversion metrics, tests them for statistical significance,
recommends a winner and manages each experiment's lifecycle.
"""

from .core import *
from .config import *
from .storage import *
from .experiments import ExperimentManager

__version__ = "0.1.0"

__all__ = [
    # Version info
    "__version__",

    # Main components
    "ExperimentManager",
    "ConfigManager",
    "SQLiteExperimentRepository",
    "InMemoryExperimentRepository",
]
