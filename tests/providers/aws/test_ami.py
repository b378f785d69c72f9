from __future__ import annotations

import pytest

from runnerstack.constants import IMAGE_OWNER_ID
from runnerstack.core.exceptions import ConfigurationError, NotFoundError
from runnerstack.providers.aws import ImageResolver
from runnerstack.providers.aws.ami import image_filters, newest_image


class TestImageFilters:
    def test_name_pattern_and_state(self):
        filters = {f["Name"]: f["Values"] for f in image_filters("ubuntu22", "x64")}
        assert filters["name"] == ["runner-ubuntu22-*"]
        assert filters["state"] == ["available"]

    def test_arch_is_mapped(self):
        filters = {f["Name"]: f["Values"] for f in image_filters("ubuntu22", "x64")}
        assert filters["architecture"] == ["x86_64"]

    def test_unknown_arch_raises(self):
        with pytest.raises(ConfigurationError, match="Unsupported runner arch: arm64"):
            image_filters("ubuntu22", "arm64")


class TestNewestImage:
    def test_greatest_name_wins(self):
        images = [
            {"ImageId": "ami-old", "Name": "runner-ubuntu22-20240101"},
            {"ImageId": "ami-new", "Name": "runner-ubuntu22-20240301"},
            {"ImageId": "ami-mid", "Name": "runner-ubuntu22-20240201"},
        ]
        assert newest_image(images)["ImageId"] == "ami-new"

    def test_empty(self):
        assert newest_image([]) is None


@pytest.mark.asyncio
class TestImageResolver:
    async def test_resolves_newest(self, ec2, ec2_factory):
        ec2.images = [
            {"ImageId": "ami-a", "Name": "runner-ubuntu22-20240101"},
            {"ImageId": "ami-b", "Name": "runner-ubuntu22-20240515"},
        ]
        image_id = await ImageResolver(ec2_factory).resolve_image("ubuntu22", "x64")
        assert image_id == "ami-b"

    async def test_queries_fixed_owner(self, ec2, ec2_factory):
        ec2.images = [{"ImageId": "ami-a", "Name": "runner-ubuntu22-1"}]
        await ImageResolver(ec2_factory).resolve_image("ubuntu22", "x64")
        (call,) = ec2.calls_to("describe_images")
        assert call["Owners"] == [IMAGE_OWNER_ID]

    async def test_no_images_raises_not_found(self, ec2_factory):
        with pytest.raises(NotFoundError, match="No AMIs found for ubuntu22 x64"):
            await ImageResolver(ec2_factory).resolve_image("ubuntu22", "x64")

    async def test_synthetic_catalog(self, ec2, ec2_factory):
        ec2.images = [
            {"ImageId": "ami-0101", "Name": "runner-ubuntu22-20240101"},
            {"ImageId": "ami-0305", "Name": "runner-ubuntu22-20240305"},
            {"ImageId": "ami-1201", "Name": "runner-ubuntu22-20231201"},
        ]
        assert await ImageResolver(ec2_factory).resolve_image("ubuntu22", "x64") == "ami-0305"
