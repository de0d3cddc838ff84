"""Exception hierarchy for the experimentation engine."""

from typing import Any, Dict, List, Optional


class ExperimentError(Exception):
    """Base class for all experimentation errors."""

    code = "EXPERIMENT_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert the error to a serializable dictionary."""
        return {"code": self.code, "message": self.message, "details": self.details}


class ValidationError(ExperimentError):
    """Experiment definition is structurally invalid.

    All violations found are carried together so the caller can fix them in
    a single round trip.
    """

    code = "VALIDATION_FAILED"

    def __init__(self, violations: List[str], details: Optional[Dict[str, Any]] = None):
        self.violations = list(violations)
        message = "Invalid experiment configuration: " + "; ".join(self.violations)
        super().__init__(message, {**(details or {}), "violations": self.violations})


class NotFoundError(ExperimentError):
    """Unknown experiment or variant ID."""

    code = "NOT_FOUND"


class InvalidStateError(ExperimentError):
    """Operation is not allowed in the experiment's current status."""

    code = "INVALID_STATE"


class ComputationError(ExperimentError):
    """Statistics were requested without enough data to compute them."""

    code = "COMPUTATION_FAILED"
