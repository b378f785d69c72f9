"""Centralized constants and enums for runnerstack.

All magic strings, device names and default values are defined here
to keep EC2 calls and the bootstrap script consistent.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Final

# =============================================================================
# Stack Identity
# =============================================================================

DEFAULT_STACK_NAME: Final = "runs-on"
STACK_PROVIDER: Final = "runs-on.com"


class StackTag(StrEnum):
    """AWS resource tag keys applied to every resource of a stack."""

    STACK = "stack"
    PROVIDER = "provider"
    NAME = "Name"


# =============================================================================
# Instance Status
# =============================================================================

STATUS_OK: Final = "ok"


# =============================================================================
# Images
# =============================================================================

IMAGE_OWNER_ID: Final = "135269210855"
IMAGE_NAME_PREFIX: Final = "runner"

SUPPORTED_RUNNER_OSES: Final = ("ubuntu22",)
SUPPORTED_RUNNER_ARCHES: Final = ("x64",)

ARCHITECTURES: Final = {
    "x64": "x86_64",
}


# =============================================================================
# Network Stack
# =============================================================================

VPC_CIDR: Final = "10.0.0.0/16"
SUBNET_CIDR: Final = "10.0.1.0/24"
DEFAULT_ROUTE_CIDR: Final = "0.0.0.0/0"
ADMIN_PORT: Final = 22


# =============================================================================
# Launch Specification
# =============================================================================

ROOT_DEVICE: Final = "/dev/sda1"
INSTANCE_STORE_DEVICE: Final = "/dev/sdb"
INSTANCE_STORE_VIRTUAL_NAME: Final = "ephemeral0"
IOPS_STORAGE_TYPES: Final = frozenset({"io1", "io2"})

DEFAULT_STORAGE_TYPE: Final = "gp3"
DEFAULT_STORAGE_SIZE: Final = 40
DEFAULT_SPOT_MAX_PRICE: Final = "2.0"


# =============================================================================
# Timeouts
# =============================================================================

INSTANCE_RUNNING_TIMEOUT: Final = 300
INSTANCE_RUNNING_WAIT_DELAY: Final = 5
STATUS_CHECK_MAX_ATTEMPTS: Final = 30
STATUS_CHECK_INTERVAL: Final = 10.0


# =============================================================================
# Runner Agent
# =============================================================================

COLLABORATORS_PLACEHOLDER: Final = "@collaborators/push"
DEFAULT_RUNNER_AGENT_VERSION: Final = "2.317.0"
DEFAULT_GITHUB_BASE_URL: Final = "https://api.github.com"
AGENT_USER: Final = "ubuntu"
AGENT_DIR: Final = "/opt/runner"
AGENT_WAIT_TIMEOUT: Final = "20m"
AGENT_FULL_TIMEOUT: Final = "12h"
