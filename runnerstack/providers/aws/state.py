"""AWS resource descriptors.

The live EC2 inventory is the only source of truth; these frozen
dataclasses are snapshots of it taken during a single run.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from runnerstack.constants import STACK_PROVIDER, StackTag

# =============================================================================
# Stack Identity
# =============================================================================


@dataclass(frozen=True, slots=True)
class StackIdentity:
    """Name/tag pair identifying all resources of one stack deployment."""

    name: str

    @property
    def tags(self) -> list[dict[str, str]]:
        """Tags attached to every created resource."""
        return [
            {"Key": StackTag.STACK, "Value": self.name},
            {"Key": StackTag.PROVIDER, "Value": STACK_PROVIDER},
        ]

    @property
    def filters(self) -> list[dict[str, Any]]:
        """Describe-call filters matching resources of this stack."""
        return [{"Name": f"tag:{StackTag.STACK}", "Values": [self.name]}]

    def resource_name(self, suffix: str) -> str:
        return f"{self.name}-{suffix}"

    def tag_specification(self, resource_type: str, name: str | None = None) -> dict[str, Any]:
        """TagSpecifications entry with an optional Name tag in front."""
        tags = list(self.tags)
        if name is not None:
            tags.insert(0, {"Key": StackTag.NAME, "Value": name})
        return {"ResourceType": resource_type, "Tags": tags}


# =============================================================================
# Network Stack
# =============================================================================


@dataclass(frozen=True, slots=True)
class Reconciled:
    """Outcome of a discover-or-create step.

    ``created`` is False when an existing tagged resource was reused.
    """

    kind: str
    id: str
    created: bool
    raw: dict[str, Any]


@dataclass(frozen=True, slots=True)
class NetworkStack:
    """The network entities a runner instance is placed into."""

    vpc: Reconciled
    internet_gateway: Reconciled
    subnet: Reconciled
    security_group: Reconciled

    @property
    def vpc_id(self) -> str:
        return self.vpc.id

    @property
    def subnet_id(self) -> str:
        return self.subnet.id

    @property
    def security_group_id(self) -> str:
        return self.security_group.id

    @property
    def created(self) -> tuple[str, ...]:
        """Kinds of resources created by this reconciliation."""
        parts = (self.vpc, self.internet_gateway, self.subnet, self.security_group)
        return tuple(p.kind for p in parts if p.created)


# =============================================================================
# Launch Specification
# =============================================================================


@dataclass(frozen=True, slots=True)
class StorageSpec:
    """Root volume layout."""

    type: str
    size: int
    iops: int = 0


@dataclass(frozen=True, slots=True)
class LaunchSpec:
    """Everything needed to launch the runner instance.

    ``instance_types`` is the caller's priority order; the first type
    that launches wins.
    """

    image_id: str
    instance_types: tuple[str, ...]
    storage: StorageSpec
    subnet_id: str
    security_group_id: str
    user_data: str
    instance_name: str
    use_spot: bool = False
    spot_max_price: str = "2.0"
    dry_run: bool = False


# =============================================================================
# Instance
# =============================================================================


@dataclass(frozen=True, slots=True)
class Instance:
    """Snapshot of an EC2 instance."""

    id: str
    instance_type: str
    state: str
    public_ip: str | None = None
    private_ip: str | None = None
    spot: bool = False

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> Instance:
        return cls(
            id=raw["InstanceId"],
            instance_type=raw.get("InstanceType", ""),
            state=raw.get("State", {}).get("Name", ""),
            public_ip=raw.get("PublicIpAddress"),
            private_ip=raw.get("PrivateIpAddress"),
            spot=raw.get("InstanceLifecycle") == "spot",
        )
