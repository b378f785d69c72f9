"""End-to-end runner launch.

``RunnerLauncher.launch()`` ties the components together: image, network
stack, admin keys, runner registration, instance and readiness.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from injector import inject
from loguru import logger
from rich.console import Console
from rich.table import Table

from runnerstack.bootstrap import expand_admins, generate_label, render_user_data
from runnerstack.config import RunnerConfig
from runnerstack.core.exceptions import ProvisioningError
from runnerstack.github import GitHubClient
from runnerstack.providers.aws import (
    ImageResolver,
    InstanceProvisioner,
    LaunchSpec,
    ReadinessWaiter,
    StackReconciler,
    StorageSpec,
)

log = logger.bind(component="runner")


@dataclass(frozen=True, slots=True)
class RunnerOutputs:
    """Result of a launch. Instance fields are empty for a dry run."""

    label: str
    instance_id: str = ""
    public_ip: str = ""
    instance_type: str = ""
    dry_run: bool = False

    def as_outputs(self) -> dict[str, str]:
        """Action output names and values."""
        return {
            "runner-label": self.label,
            "runner-instance-id": self.instance_id,
            "runner-instance-ipv4": self.public_ip,
            "runner-instance-type": self.instance_type,
        }


def write_outputs(outputs: RunnerOutputs, path: str | Path | None = None) -> bool:
    """Append ``key=value`` lines to the ``$GITHUB_OUTPUT`` file.

    Returns False when no output file is configured.
    """
    target = path or os.environ.get("GITHUB_OUTPUT")
    if not target:
        return False
    with Path(target).open("a", encoding="utf-8") as f:
        for key, value in outputs.as_outputs().items():
            f.write(f"{key}={value}\n")
    return True


def render_outputs(outputs: RunnerOutputs, console: Console | None = None) -> None:
    console = console or Console()
    if outputs.dry_run:
        console.print("[green]✅ Dry run successful[/green]")
        return

    table = Table(title="Runner", show_header=False)
    table.add_column(style="bold")
    table.add_column()
    for key, value in outputs.as_outputs().items():
        table.add_row(key, value or "-")
    console.print(table)


class RunnerLauncher:
    @inject
    def __init__(
        self,
        config: RunnerConfig,
        images: ImageResolver,
        stack: StackReconciler,
        provisioner: InstanceProvisioner,
        waiter: ReadinessWaiter,
        github: GitHubClient,
    ) -> None:
        self._config = config
        self._images = images
        self._stack = stack
        self._provisioner = provisioner
        self._waiter = waiter
        self._github = github

    async def launch(self) -> RunnerOutputs:
        """Launch one ephemeral runner.

        Raises:
            ConfigurationError: Invalid inputs (before any remote call).
            NotFoundError: No image, or the repository is not accessible.
            StackError: The network stack could not be reconciled.
            RegistrationError: The runner could not be registered.
            ProvisioningError: No instance type could be launched.
            TimeoutError: The instance did not become ready in time.
        """
        config = self._config.validate()

        image_id = config.image_id or await self._images.resolve_image(
            config.runner_os, config.runner_arch
        )
        log.info("Using image {image_id}", image_id=image_id)

        if config.verify_access:
            await self._github.verify_repository_access()

        network = await self._stack.ensure_stack()

        admins = await expand_admins(config.admins, self._github.list_collaborators_with_push)
        log.info("Admins: {admins}", admins=", ".join(admins) or "-")
        ssh_keys = await self._github.list_public_keys(admins)

        label = generate_label(config.aws.stack_name)
        log.info("Runner label: {label}", label=label)
        jit_config = await self._github.generate_jit_config(label)

        spec = LaunchSpec(
            image_id=image_id,
            instance_types=config.runner_types,
            storage=StorageSpec(
                type=config.storage_type,
                size=config.storage_size,
                iops=config.storage_iops,
            ),
            subnet_id=network.subnet_id,
            security_group_id=network.security_group_id,
            user_data=render_user_data(jit_config, ssh_keys, label, config.runner_agent_version),
            instance_name=label,
            use_spot=config.use_spot_instances,
            spot_max_price=config.spot_max_price,
            dry_run=config.dry_run,
        )

        instance = await self._provisioner.launch_instance(spec)
        if instance is None:
            if config.dry_run:
                log.info("Dry run successful")
                return RunnerOutputs(label=label, dry_run=True)
            raise ProvisioningError(config.runner_types)

        await self._waiter.wait_until_ready(instance.id, config.wait_for_status_checks)
        details = await self._waiter.describe_instance(instance.id)

        return RunnerOutputs(
            label=label,
            instance_id=details.id,
            public_ip=details.public_ip or "",
            instance_type=details.instance_type or instance.instance_type,
        )
