"""
Exception types shared by the validator, the pipeline and the HTTP layer.
"""

from typing import List, Optional


class InvalidPayload(Exception):
    """The request body could not be parsed as JSON."""

    def __init__(self, message: str = "Invalid JSON payload"):
        super().__init__(message)
        self.message = message


class InvalidRequest(Exception):
    """The payload parsed but failed schema validation."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        self.message = ", ".join(self.errors)
        super().__init__(self.message)


class StageError(Exception):
    """Raised by a stage collaborator when its unit of work fails."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.details = details or {}


class AgentExecutionError(Exception):
    """A pipeline stage failed. Carries the log trail up to the failure."""

    def __init__(self, message: str, logs=None, stage: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.logs = list(logs or [])
        self.stage = stage


class AgentTimeoutError(AgentExecutionError):
    """The job ran past the configured execution ceiling."""
