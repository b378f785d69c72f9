"""Runner instance launch with instance-type fallback.

Candidate instance types are tried strictly in order. Each attempt
either launches the instance, is skipped with a reason, or (in dry-run
mode) stops before calling RunInstances.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Any, TypeAlias

from botocore.exceptions import BotoCoreError, ClientError
from injector import inject
from loguru import logger

from runnerstack.constants import (
    INSTANCE_STORE_DEVICE,
    INSTANCE_STORE_VIRTUAL_NAME,
    IOPS_STORAGE_TYPES,
    ROOT_DEVICE,
)
from runnerstack.core.exceptions import ConfigurationError, ProvisioningError

from .clients import EC2ClientFactory
from .state import Instance, LaunchSpec, StackIdentity, StorageSpec

log = logger.bind(component="instances")


# =============================================================================
# Attempt Results
# =============================================================================


@dataclass(frozen=True, slots=True)
class Launched:
    instance: Instance


@dataclass(frozen=True, slots=True)
class Skipped:
    instance_type: str
    reason: str


@dataclass(frozen=True, slots=True)
class DryRun:
    instance_type: str
    params: dict[str, Any]


Attempt: TypeAlias = Launched | Skipped | DryRun


# =============================================================================
# Launch Parameters
# =============================================================================


def root_volume(storage: StorageSpec) -> dict[str, Any]:
    """Root EBS mapping; Iops only for io1/io2 with a positive value."""
    ebs: dict[str, Any] = {
        "VolumeSize": storage.size,
        "VolumeType": storage.type,
        "DeleteOnTermination": True,
    }
    if storage.type in IOPS_STORAGE_TYPES and storage.iops > 0:
        ebs["Iops"] = storage.iops
    return {"DeviceName": ROOT_DEVICE, "Ebs": ebs}


def block_device_mappings(storage: StorageSpec, instance_store: bool) -> list[dict[str, Any]]:
    """Volume list for one candidate. The instance store goes ahead of the root volume."""
    mappings = [root_volume(storage)]
    if instance_store:
        mappings.insert(
            0,
            {"DeviceName": INSTANCE_STORE_DEVICE, "VirtualName": INSTANCE_STORE_VIRTUAL_NAME},
        )
    return mappings


def base_params(spec: LaunchSpec, identity: StackIdentity) -> dict[str, Any]:
    """RunInstances parameters shared by every candidate."""
    params: dict[str, Any] = {
        "ImageId": spec.image_id,
        "SubnetId": spec.subnet_id,
        "SecurityGroupIds": [spec.security_group_id],
        "MinCount": 1,
        "MaxCount": 1,
        "TagSpecifications": [
            identity.tag_specification("instance", spec.instance_name),
            identity.tag_specification("volume", spec.instance_name),
        ],
        "EbsOptimized": True,
        "InstanceInitiatedShutdownBehavior": "terminate",
        "UserData": base64.b64encode(spec.user_data.encode()).decode(),
    }

    if spec.use_spot:
        params["InstanceMarketOptions"] = {
            "MarketType": "spot",
            "SpotOptions": {
                # upper bound only; the current spot price is what gets billed
                "MaxPrice": spec.spot_max_price,
                "SpotInstanceType": "one-time",
                "InstanceInterruptionBehavior": "terminate",
            },
        }

    return params


def candidate_params(
    base: dict[str, Any],
    storage: StorageSpec,
    instance_type: str,
    instance_store: bool,
) -> dict[str, Any]:
    return {
        **base,
        "InstanceType": instance_type,
        "BlockDeviceMappings": block_device_mappings(storage, instance_store),
    }


# =============================================================================
# Provisioner
# =============================================================================


class InstanceProvisioner:
    """Launches the runner instance, falling back across instance types."""

    @inject
    def __init__(self, ec2: EC2ClientFactory, identity: StackIdentity) -> None:
        self._ec2 = ec2
        self._identity = identity

    async def launch_instance(self, spec: LaunchSpec) -> Instance | None:
        """Launch one instance using the first candidate type that works.

        Returns:
            The created instance, or None in dry-run mode.

        Raises:
            ConfigurationError: If no candidate types were given.
            ProvisioningError: If every candidate failed.
        """
        if not spec.instance_types:
            raise ConfigurationError("No runner types specified")

        if spec.use_spot:
            log.info("Using spot instances (max price {price})", price=spec.spot_max_price)

        base = base_params(spec, self._identity)
        skipped: list[Skipped] = []

        async with self._ec2() as ec2:
            for instance_type in spec.instance_types:
                match await self._attempt(ec2, spec, base, instance_type):
                    case Launched(instance=instance):
                        return instance
                    case DryRun(instance_type=dry_type, params=params):
                        log.debug("Dry-run request for {type}: {params}", type=dry_type, params=params)
                        return None
                    case Skipped() as skip:
                        skipped.append(skip)

        raise ProvisioningError(
            spec.instance_types,
            tuple(f"{s.instance_type}: {s.reason}" for s in skipped),
        )

    async def _attempt(
        self,
        ec2: Any,
        spec: LaunchSpec,
        base: dict[str, Any],
        instance_type: str,
    ) -> Attempt:
        instance_store = await self.has_instance_store(ec2, instance_type)
        params = candidate_params(base, spec.storage, instance_type, instance_store)

        if spec.dry_run:
            log.info("Not launching {type} since dry-run is enabled", type=instance_type)
            return DryRun(instance_type=instance_type, params=params)

        log.info("Attempting to create instance with type {type}...", type=instance_type)
        try:
            response = await ec2.run_instances(**params)
        except (ClientError, BotoCoreError) as e:
            log.warning("Failed to create instance with type {type}: {err}", type=instance_type, err=e)
            return Skipped(instance_type=instance_type, reason=str(e))

        instance = Instance.from_api({"InstanceType": instance_type, **response["Instances"][0]})
        log.info(
            "EC2 instance created with ID {id} and type {type}",
            id=instance.id, type=instance.instance_type,
        )
        return Launched(instance=instance)

    async def has_instance_store(self, ec2: Any, instance_type: str) -> bool:
        """Whether the instance type comes with local instance-store volumes."""
        try:
            response = await ec2.describe_instance_types(InstanceTypes=[instance_type])
        except (ClientError, BotoCoreError) as e:
            log.warning("Could not describe instance type {type}: {err}", type=instance_type, err=e)
            return False

        types = response.get("InstanceTypes") or []
        return bool(types and types[0].get("InstanceStorageSupported"))
