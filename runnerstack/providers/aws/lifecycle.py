"""Readiness and teardown for runner instances."""

from __future__ import annotations

from typing import Any

from botocore.exceptions import BotoCoreError, ClientError, WaiterError
from injector import NoInject, inject
from loguru import logger

from runnerstack.constants import INSTANCE_RUNNING_WAIT_DELAY, STATUS_OK
from runnerstack.core.exceptions import (
    HealthCheckTimeoutError,
    NotFoundError,
    TerminationError,
    TimeoutError,
)
from runnerstack.providers.wait import Sleep, poll_until

from .clients import EC2ClientFactory
from .config import AWS
from .state import Instance

log = logger.bind(component="lifecycle")


def status_checks_passed(statuses: list[dict[str, Any]]) -> bool:
    """True when both instance and system status checks report ok."""
    if not statuses:
        return False
    status = statuses[0]
    return (
        status.get("InstanceStatus", {}).get("Status") == STATUS_OK
        and status.get("SystemStatus", {}).get("Status") == STATUS_OK
    )


class ReadinessWaiter:
    """Waits for an instance to be running and, optionally, healthy.

    Status checks are opt-in: they report ok well after the runner agent
    inside the instance is already connected.
    """

    @inject
    def __init__(
        self,
        ec2: EC2ClientFactory,
        config: AWS,
        sleep: NoInject[Sleep | None] = None,
    ) -> None:
        self._ec2 = ec2
        self._config = config
        self._sleep = sleep

    async def wait_until_ready(self, instance_id: str, wait_for_status_checks: bool = False) -> None:
        """Block until the instance is running (and passes status checks if asked).

        Raises:
            TimeoutError: If the running state is not reached in time.
            HealthCheckTimeoutError: If status checks keep failing.
        """
        bound = log.bind(instance_id=instance_id)
        bound.info("Waiting for instance to be in running state...")

        async with self._ec2() as ec2:
            await self._wait_running(ec2, instance_id)
            bound.info("EC2 instance is now running")

            if wait_for_status_checks:
                await self._wait_status_checks(ec2, instance_id)
                bound.info("Instance is running and status checks passed")

    async def _wait_running(self, ec2: Any, instance_id: str) -> None:
        timeout = self._config.instance_timeout
        waiter = ec2.get_waiter("instance_running")
        try:
            await waiter.wait(
                InstanceIds=[instance_id],
                WaiterConfig={
                    "Delay": INSTANCE_RUNNING_WAIT_DELAY,
                    "MaxAttempts": max(1, timeout // INSTANCE_RUNNING_WAIT_DELAY),
                },
            )
        except WaiterError as e:
            raise TimeoutError(
                f"Instance {instance_id} did not reach the running state within {timeout}s: {e}"
            ) from e

    async def _wait_status_checks(self, ec2: Any, instance_id: str) -> None:
        async def poll() -> bool:
            response = await ec2.describe_instance_status(InstanceIds=[instance_id])
            return status_checks_passed(response.get("InstanceStatuses", []))

        attempts = self._config.status_check_attempts
        kwargs: dict[str, Any] = {"sleep": self._sleep} if self._sleep is not None else {}
        try:
            await poll_until(
                poll,
                lambda ok: ok,
                max_attempts=attempts,
                interval=self._config.status_check_interval,
                retry_on=(ClientError,),
                description=f"instance {instance_id} status checks",
                **kwargs,
            )
        except TimeoutError as e:
            raise HealthCheckTimeoutError(instance_id, attempts) from e

    async def describe_instance(self, instance_id: str) -> Instance:
        """Fetch the current snapshot of an instance."""
        async with self._ec2() as ec2:
            response = await ec2.describe_instances(
                Filters=[{"Name": "instance-id", "Values": [instance_id]}]
            )

        for reservation in response.get("Reservations", []):
            for raw in reservation.get("Instances", []):
                return Instance.from_api(raw)
        raise NotFoundError(f"No instances found with ID {instance_id}")


class LifecycleManager:
    """Terminates runner instances. Failures always surface."""

    @inject
    def __init__(self, ec2: EC2ClientFactory) -> None:
        self._ec2 = ec2

    async def terminate(self, instance_id: str | None) -> bool:
        """Terminate an instance.

        Returns:
            False when there was no instance id (nothing to do), True otherwise.

        Raises:
            TerminationError: If the terminate request failed.
        """
        if not instance_id:
            log.info("No instance ID available to terminate")
            return False

        log.info("Terminating EC2 instance {id}", id=instance_id)
        async with self._ec2() as ec2:
            try:
                await ec2.terminate_instances(InstanceIds=[instance_id])
            except (ClientError, BotoCoreError) as e:
                raise TerminationError(instance_id, str(e)) from e

        log.info("Instance {id} terminated", id=instance_id)
        return True
