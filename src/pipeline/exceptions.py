"""Custom exceptions for the feature pipeline."""

from __future__ import annotations


class PipelineError(Exception):
    """Base exception for all pipeline errors."""

    pass


class JobNotFoundError(PipelineError):
    """Raised when a job does not exist or belongs to another owner."""

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        super().__init__("Feature not found")


class InvalidTransitionError(PipelineError):
    """Raised when a user action does not apply to the job's current status."""

    def __init__(self, job_id: str, trigger: str, status: str, message: str) -> None:
        self.job_id = job_id
        self.trigger = trigger
        self.status = status
        super().__init__(message)


class CredentialError(PipelineError):
    """Raised when the owner's provider credential cannot be read."""

    pass


class PersistenceError(PipelineError):
    """Raised when a store read or write fails."""

    pass
