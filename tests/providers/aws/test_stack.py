from __future__ import annotations

import pytest

from runnerstack.core.exceptions import StackError
from runnerstack.providers.aws import StackIdentity, StackReconciler

from conftest import client_error


def tag_values(resource: dict, key: str) -> list[str]:
    return [t["Value"] for t in resource.get("Tags", []) if t["Key"] == key]


@pytest.mark.asyncio
class TestEnsureStackFromScratch:
    async def test_creates_every_resource(self, ec2, ec2_factory, identity):
        stack = await StackReconciler(ec2_factory, identity).ensure_stack()

        assert stack.created == ("vpc", "internet-gateway", "subnet", "security-group")
        assert stack.vpc_id == ec2.vpcs[0]["VpcId"]
        assert stack.subnet_id == ec2.subnets[0]["SubnetId"]
        assert stack.security_group_id == ec2.security_groups[0]["GroupId"]

    async def test_dependency_order(self, ec2, ec2_factory, identity):
        await StackReconciler(ec2_factory, identity).ensure_stack()
        creates = [op for op in ec2.ops() if op.startswith("create_")]
        assert creates == [
            "create_vpc",
            "create_internet_gateway",
            "create_route",
            "create_subnet",
            "create_security_group",
        ]

    async def test_resources_are_tagged(self, ec2, ec2_factory, identity):
        await StackReconciler(ec2_factory, identity).ensure_stack()
        for resource in (ec2.vpcs[0], ec2.internet_gateways[0], ec2.subnets[0], ec2.security_groups[0]):
            assert tag_values(resource, "stack") == ["runs-on"]
            assert tag_values(resource, "provider") == ["runs-on.com"]
        assert tag_values(ec2.vpcs[0], "Name") == ["runs-on-vpc"]

    async def test_gateway_attached_and_routed(self, ec2, ec2_factory, identity):
        stack = await StackReconciler(ec2_factory, identity).ensure_stack()

        (attach,) = ec2.calls_to("attach_internet_gateway")
        assert attach == {"InternetGatewayId": stack.internet_gateway.id, "VpcId": stack.vpc_id}

        (route,) = ec2.calls_to("create_route")
        assert route["DestinationCidrBlock"] == "0.0.0.0/0"
        assert route["GatewayId"] == stack.internet_gateway.id
        assert route["RouteTableId"] == ec2.route_tables[0]["RouteTableId"]

    async def test_ssh_ingress(self, ec2, ec2_factory, identity):
        stack = await StackReconciler(ec2_factory, identity).ensure_stack()
        (ingress,) = ec2.calls_to("authorize_security_group_ingress")
        assert ingress["GroupId"] == stack.security_group_id
        (rule,) = ingress["IpPermissions"]
        assert (rule["IpProtocol"], rule["FromPort"], rule["ToPort"]) == ("tcp", 22, 22)
        assert rule["IpRanges"][0]["CidrIp"] == "0.0.0.0/0"

    async def test_public_ip_on_launch(self, ec2, ec2_factory, identity):
        stack = await StackReconciler(ec2_factory, identity).ensure_stack()
        (modify,) = ec2.calls_to("modify_subnet_attribute")
        assert modify == {"SubnetId": stack.subnet_id, "MapPublicIpOnLaunch": {"Value": True}}


@pytest.mark.asyncio
class TestEnsureStackIdempotence:
    async def test_second_run_creates_nothing(self, ec2, ec2_factory, identity):
        first = await StackReconciler(ec2_factory, identity).ensure_stack()
        ec2.calls.clear()

        second = await StackReconciler(ec2_factory, identity).ensure_stack()

        assert second.created == ()
        assert (second.vpc_id, second.subnet_id, second.security_group_id) == (
            first.vpc_id, first.subnet_id, first.security_group_id,
        )
        assert not [op for op in ec2.ops() if op.startswith(("create_", "attach_", "authorize_"))]

    async def test_group_left_by_interrupted_run_is_reused_as_is(self, ec2, ec2_factory, identity):
        ec2.fail["authorize_security_group_ingress"] = client_error("RequestLimitExceeded", "AuthorizeSecurityGroupIngress")
        with pytest.raises(StackError):
            await StackReconciler(ec2_factory, identity).ensure_stack()
        del ec2.fail["authorize_security_group_ingress"]
        ec2.calls.clear()

        stack = await StackReconciler(ec2_factory, identity).ensure_stack()

        assert "security-group" not in stack.created
        assert stack.security_group_id == ec2.security_groups[0]["GroupId"]
        assert ec2.calls_to("authorize_security_group_ingress") == []

    async def test_reused_subnet_still_gets_public_ip_setting(self, ec2, ec2_factory, identity):
        await StackReconciler(ec2_factory, identity).ensure_stack()
        ec2.calls.clear()

        await StackReconciler(ec2_factory, identity).ensure_stack()

        assert len(ec2.calls_to("modify_subnet_attribute")) == 1

    async def test_other_stack_is_not_reused(self, ec2, ec2_factory, identity):
        await StackReconciler(ec2_factory, identity).ensure_stack()

        other = await StackReconciler(ec2_factory, StackIdentity("other")).ensure_stack()

        assert "vpc" in other.created
        assert len(ec2.vpcs) == 2


@pytest.mark.asyncio
class TestEnsureStackFailures:
    async def test_client_error_becomes_stack_error(self, ec2, ec2_factory, identity):
        ec2.fail["create_subnet"] = client_error("VpcLimitExceeded", "CreateSubnet")

        with pytest.raises(StackError, match="VpcLimitExceeded") as exc_info:
            await StackReconciler(ec2_factory, identity).ensure_stack()

        assert exc_info.value.__cause__ is ec2.fail["create_subnet"]
        assert "create_security_group" not in ec2.ops()

    async def test_missing_main_route_table(self, ec2, ec2_factory, identity):
        ec2.vpcs.append({"VpcId": "vpc-x", "Tags": [{"Key": "stack", "Value": "runs-on"}]})

        with pytest.raises(StackError, match="No main route table found for VPC vpc-x"):
            await StackReconciler(ec2_factory, identity).ensure_stack()
