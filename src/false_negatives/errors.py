# src/false_negatives/errors.py
"""Exceptions raised before any sampling work starts.

Convergence problems are not exceptions: they are attached to a run's
diagnostics instead (see sampling/diagnostics.py).
"""

from typing import Any, Dict, Optional


class InputValidationError(ValueError):
    """A dataset row or attack-rate pair is malformed.

    `record` holds the row position and its values so the caller can find
    the offending line in the input file.
    """

    def __init__(self, message: str, record: Optional[Dict[str, Any]] = None):
        if record is not None:
            message = f"{message} (record: {record})"
        super().__init__(message)
        self.record = record


class ConfigurationError(ValueError):
    """Sampler or hyperparameter settings that cannot describe a valid run."""
