"""Boot image resolution for runner instances.

Runner images are published by a fixed owner account and named
``runner-<os>-<build>``, where the build suffix sorts chronologically.
"""

from __future__ import annotations

from typing import Any

from injector import inject
from loguru import logger

from runnerstack.constants import ARCHITECTURES, IMAGE_NAME_PREFIX, IMAGE_OWNER_ID
from runnerstack.core.exceptions import ConfigurationError, NotFoundError

from .clients import EC2ClientFactory

log = logger.bind(component="ami")


def image_filters(os: str, arch: str) -> list[dict[str, Any]]:
    """Build describe_images filters for an OS/architecture pair."""
    try:
        architecture = ARCHITECTURES[arch]
    except KeyError:
        raise ConfigurationError(
            f"Unsupported runner arch: {arch}. Must be one of {', '.join(ARCHITECTURES)}"
        ) from None

    return [
        {"Name": "name", "Values": [f"{IMAGE_NAME_PREFIX}-{os}-*"]},
        {"Name": "architecture", "Values": [architecture]},
        {"Name": "state", "Values": ["available"]},
    ]


def newest_image(images: list[dict[str, Any]]) -> dict[str, Any] | None:
    """Pick the image with the lexicographically greatest name."""
    if not images:
        return None
    return max(images, key=lambda image: image.get("Name") or "")


class ImageResolver:
    """Finds the newest runner image for an OS/architecture pair."""

    @inject
    def __init__(self, ec2: EC2ClientFactory) -> None:
        self._ec2 = ec2

    async def resolve_image(self, os: str, arch: str) -> str:
        """Return the image id of the newest matching runner image.

        Raises:
            ConfigurationError: If the architecture is not supported.
            NotFoundError: If no available image matches.
        """
        filters = image_filters(os, arch)

        async with self._ec2() as ec2:
            response = await ec2.describe_images(Filters=filters, Owners=[IMAGE_OWNER_ID])

        image = newest_image(response.get("Images", []))
        if image is None:
            raise NotFoundError(f"No AMIs found for {os} {arch}")

        log.info("Latest AMI ID: {id} ({name})", id=image["ImageId"], name=image.get("Name"))
        return image["ImageId"]
