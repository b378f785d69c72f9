"""Custom exception hierarchy for runnerstack.

All runnerstack-specific exceptions inherit from RunnerStackError, so the
CLI can report every expected failure with a single except clause.
"""

from __future__ import annotations


class RunnerStackError(Exception):
    """Base exception for all runnerstack errors."""


class ConfigurationError(RunnerStackError):
    """Raised for invalid configuration or missing required settings."""


class NotFoundError(RunnerStackError):
    """Raised when a required remote entity does not exist."""


class StackError(RunnerStackError):
    """Raised when the network stack cannot be discovered or created."""


class ProvisioningError(RunnerStackError):
    """Raised when no candidate instance type could be launched."""

    def __init__(self, instance_types: tuple[str, ...], reasons: tuple[str, ...] = ()) -> None:
        self.instance_types = instance_types
        self.reasons = reasons
        super().__init__(
            "Failed to create instance with any of the provided instance types: "
            + ", ".join(instance_types)
        )


class TimeoutError(RunnerStackError):  # noqa: A001
    """Raised when an instance does not reach the running state in time."""


class HealthCheckTimeoutError(TimeoutError):
    """Raised when status checks do not pass within the attempt bound."""

    def __init__(self, instance_id: str, attempts: int) -> None:
        self.instance_id = instance_id
        self.attempts = attempts
        super().__init__(
            f"Instance {instance_id} did not pass status checks after {attempts} attempts"
        )


class TerminationError(RunnerStackError):
    """Raised when an instance could not be terminated."""

    def __init__(self, instance_id: str, reason: str = "unknown") -> None:
        self.instance_id = instance_id
        self.reason = reason
        super().__init__(f"Failed to terminate instance {instance_id}: {reason}")


class RegistrationError(RunnerStackError):
    """Raised when the job-coordination service rejects a request."""
