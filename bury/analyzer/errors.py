"""Error taxonomy for the analysis engine.

Only conditions that abort a unit of work are exceptions. Resolution
ambiguities, depth overruns and empty root sets are reported as warnings on
the analysis result instead.
"""
from typing import Any, Dict, Optional


class BuryError(Exception):
    """Base class for all errors raised by bury."""


class ExtractionFailure(BuryError):
    """A single file could not be parsed or decoded.

    Recovered by the engine: the file is excluded and a warning recorded.
    """

    def __init__(self, path: str, message: str):
        self.path = path
        self.message = message
        super().__init__(f"{path}: {message}")


class InternalInvariantViolation(BuryError):
    """A graph or model invariant was broken. Always fatal."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        self.message = message
        self.context = dict(context or {})
        details = ", ".join(f"{key}={value!r}" for key, value in sorted(self.context.items()))
        super().__init__(f"{message} ({details})" if details else message)


class AnalysisCancelled(BuryError):
    """Raised at a phase boundary after cancellation was requested."""

    def __init__(self, phase: str):
        self.phase = phase
        super().__init__(f"Analysis cancelled before phase: {phase}")


class ConfigError(BuryError, ValueError):
    """Invalid project configuration (.bury.json, environment overrides)."""
