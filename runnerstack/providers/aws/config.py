"""AWS provider configuration.

Immutable configuration dataclass for the EC2 side of a runner launch.
"""

from __future__ import annotations

from dataclasses import dataclass

from runnerstack.constants import (
    DEFAULT_STACK_NAME,
    INSTANCE_RUNNING_TIMEOUT,
    STATUS_CHECK_INTERVAL,
    STATUS_CHECK_MAX_ATTEMPTS,
)


@dataclass(frozen=True, slots=True)
class AWS:
    """AWS provider configuration.

    Example:
        >>> from runnerstack.providers.aws import AWS
        >>> config = AWS(region="eu-west-1", stack_name="ci")

    Args:
        region: AWS region. If None, boto's default resolution applies
            (AWS_REGION / AWS_DEFAULT_REGION / profile).
        stack_name: Identity tag shared by every resource of the stack.
        instance_timeout: Seconds to wait for the running state.
        status_check_attempts: Maximum status-check polls.
        status_check_interval: Seconds between status-check polls.
    """

    region: str | None = None
    stack_name: str = DEFAULT_STACK_NAME
    instance_timeout: int = INSTANCE_RUNNING_TIMEOUT
    status_check_attempts: int = STATUS_CHECK_MAX_ATTEMPTS
    status_check_interval: float = STATUS_CHECK_INTERVAL
