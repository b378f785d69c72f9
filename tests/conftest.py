from __future__ import annotations

import itertools
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import pytest
from botocore.exceptions import ClientError, WaiterError

from runnerstack.providers.aws import AWS, EC2ClientFactory, StackIdentity


def client_error(code: str = "InsufficientInstanceCapacity", op: str = "RunInstances") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": f"{code} (test)"}}, op)


def _tags(tag_specs: list[dict[str, Any]] | None) -> list[dict[str, str]]:
    return [tag for spec in tag_specs or [] for tag in spec["Tags"]]


def _matches(resource: dict[str, Any], filters: list[dict[str, Any]] | None) -> bool:
    for f in filters or []:
        name, values = f["Name"], f["Values"]
        if name.startswith("tag:"):
            key = name.removeprefix("tag:")
            if not any(t["Key"] == key and t["Value"] in values for t in resource.get("Tags", [])):
                return False
        elif name == "vpc-id":
            if resource.get("VpcId") not in values:
                return False
        elif name == "attachment.vpc-id":
            if not any(a["VpcId"] in values for a in resource.get("Attachments", [])):
                return False
        elif name == "association.main":
            if str(resource.get("Main", False)).lower() not in values:
                return False
        elif name == "instance-id":
            if resource.get("InstanceId") not in values:
                return False
    return True


class FakeWaiter:
    def __init__(self, ec2: FakeEC2, name: str) -> None:
        self._ec2 = ec2
        self.name = name

    async def wait(self, **kwargs: Any) -> None:
        self._ec2.calls.append((f"waiter:{self.name}", kwargs))
        if self._ec2.waiter_fails:
            raise WaiterError(self.name, "Max attempts exceeded", {})


class FakeEC2:
    """In-memory EC2 client covering the calls runnerstack makes.

    Every call is recorded in ``calls``. ``fail`` maps an operation name
    to the botocore error it should raise.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.fail: dict[str, Exception] = {}
        self.images: list[dict[str, Any]] = []
        self.vpcs: list[dict[str, Any]] = []
        self.internet_gateways: list[dict[str, Any]] = []
        self.subnets: list[dict[str, Any]] = []
        self.security_groups: list[dict[str, Any]] = []
        self.route_tables: list[dict[str, Any]] = []
        self.instances: list[dict[str, Any]] = []
        self.instance_store_types: set[str] = set()
        self.rejected_types: set[str] = set()
        self.statuses: list[str] = []
        self.waiter_fails = False
        self._ids = itertools.count(1)

    def _record(self, op: str, kwargs: dict[str, Any]) -> None:
        self.calls.append((op, kwargs))
        if op in self.fail:
            raise self.fail[op]

    def _id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids):04d}"

    def ops(self) -> list[str]:
        return [op for op, _ in self.calls]

    def calls_to(self, op: str) -> list[dict[str, Any]]:
        return [kwargs for name, kwargs in self.calls if name == op]

    # ─── Images ──────────────────────────────────────────────────────

    async def describe_images(self, **kwargs: Any) -> dict[str, Any]:
        self._record("describe_images", kwargs)
        return {"Images": list(self.images)}

    # ─── Network ─────────────────────────────────────────────────────

    async def describe_vpcs(self, **kwargs: Any) -> dict[str, Any]:
        self._record("describe_vpcs", kwargs)
        return {"Vpcs": [v for v in self.vpcs if _matches(v, kwargs.get("Filters"))]}

    async def create_vpc(self, **kwargs: Any) -> dict[str, Any]:
        self._record("create_vpc", kwargs)
        vpc = {"VpcId": self._id("vpc"), "CidrBlock": kwargs["CidrBlock"],
               "Tags": _tags(kwargs.get("TagSpecifications"))}
        self.vpcs.append(vpc)
        self.route_tables.append({"RouteTableId": self._id("rtb"), "VpcId": vpc["VpcId"], "Main": True})
        return {"Vpc": vpc}

    async def describe_internet_gateways(self, **kwargs: Any) -> dict[str, Any]:
        self._record("describe_internet_gateways", kwargs)
        return {"InternetGateways": [
            g for g in self.internet_gateways if _matches(g, kwargs.get("Filters"))
        ]}

    async def create_internet_gateway(self, **kwargs: Any) -> dict[str, Any]:
        self._record("create_internet_gateway", kwargs)
        igw = {"InternetGatewayId": self._id("igw"), "Attachments": [],
               "Tags": _tags(kwargs.get("TagSpecifications"))}
        self.internet_gateways.append(igw)
        return {"InternetGateway": dict(igw)}

    async def attach_internet_gateway(self, **kwargs: Any) -> dict[str, Any]:
        self._record("attach_internet_gateway", kwargs)
        for igw in self.internet_gateways:
            if igw["InternetGatewayId"] == kwargs["InternetGatewayId"]:
                igw["Attachments"].append({"VpcId": kwargs["VpcId"], "State": "available"})
        return {}

    async def describe_route_tables(self, **kwargs: Any) -> dict[str, Any]:
        self._record("describe_route_tables", kwargs)
        return {"RouteTables": [t for t in self.route_tables if _matches(t, kwargs.get("Filters"))]}

    async def create_route(self, **kwargs: Any) -> dict[str, Any]:
        self._record("create_route", kwargs)
        return {"Return": True}

    async def describe_subnets(self, **kwargs: Any) -> dict[str, Any]:
        self._record("describe_subnets", kwargs)
        return {"Subnets": [s for s in self.subnets if _matches(s, kwargs.get("Filters"))]}

    async def create_subnet(self, **kwargs: Any) -> dict[str, Any]:
        self._record("create_subnet", kwargs)
        subnet = {"SubnetId": self._id("subnet"), "VpcId": kwargs["VpcId"],
                  "CidrBlock": kwargs["CidrBlock"], "Tags": _tags(kwargs.get("TagSpecifications"))}
        self.subnets.append(subnet)
        return {"Subnet": subnet}

    async def modify_subnet_attribute(self, **kwargs: Any) -> dict[str, Any]:
        self._record("modify_subnet_attribute", kwargs)
        return {}

    async def describe_security_groups(self, **kwargs: Any) -> dict[str, Any]:
        self._record("describe_security_groups", kwargs)
        return {"SecurityGroups": [
            g for g in self.security_groups if _matches(g, kwargs.get("Filters"))
        ]}

    async def create_security_group(self, **kwargs: Any) -> dict[str, Any]:
        self._record("create_security_group", kwargs)
        group = {"GroupId": self._id("sg"), "GroupName": kwargs["GroupName"],
                 "VpcId": kwargs["VpcId"], "Tags": _tags(kwargs.get("TagSpecifications"))}
        self.security_groups.append(group)
        return {"GroupId": group["GroupId"]}

    async def authorize_security_group_ingress(self, **kwargs: Any) -> dict[str, Any]:
        self._record("authorize_security_group_ingress", kwargs)
        return {"Return": True}

    # ─── Instances ───────────────────────────────────────────────────

    async def describe_instance_types(self, **kwargs: Any) -> dict[str, Any]:
        self._record("describe_instance_types", kwargs)
        return {"InstanceTypes": [
            {"InstanceType": t, "InstanceStorageSupported": t in self.instance_store_types}
            for t in kwargs["InstanceTypes"]
        ]}

    async def run_instances(self, **kwargs: Any) -> dict[str, Any]:
        self._record("run_instances", kwargs)
        if kwargs["InstanceType"] in self.rejected_types:
            raise client_error()
        instance = {
            "InstanceId": self._id("i"),
            "InstanceType": kwargs["InstanceType"],
            "State": {"Name": "pending"},
            "PrivateIpAddress": "10.0.1.10",
        }
        self.instances.append(instance)
        return {"Instances": [dict(instance)]}

    def get_waiter(self, name: str) -> FakeWaiter:
        return FakeWaiter(self, name)

    async def describe_instance_status(self, **kwargs: Any) -> dict[str, Any]:
        self._record("describe_instance_status", kwargs)
        status = self.statuses.pop(0) if len(self.statuses) > 1 else (self.statuses or ["ok"])[0]
        return {"InstanceStatuses": [{
            "InstanceId": kwargs["InstanceIds"][0],
            "InstanceStatus": {"Status": status},
            "SystemStatus": {"Status": status},
        }]}

    async def describe_instances(self, **kwargs: Any) -> dict[str, Any]:
        self._record("describe_instances", kwargs)
        found = [
            {**i, "State": {"Name": "running"}, "PublicIpAddress": "203.0.113.7"}
            for i in self.instances if _matches(i, kwargs.get("Filters"))
        ]
        return {"Reservations": [{"Instances": found}] if found else []}

    async def terminate_instances(self, **kwargs: Any) -> dict[str, Any]:
        self._record("terminate_instances", kwargs)
        return {"TerminatingInstances": [
            {"InstanceId": i, "CurrentState": {"Name": "shutting-down"}}
            for i in kwargs["InstanceIds"]
        ]}


@pytest.fixture
def ec2() -> FakeEC2:
    return FakeEC2()


@pytest.fixture
def ec2_factory(ec2: FakeEC2) -> EC2ClientFactory:
    @asynccontextmanager
    async def factory() -> AsyncIterator[FakeEC2]:
        yield ec2

    return EC2ClientFactory(factory)


@pytest.fixture
def identity() -> StackIdentity:
    return StackIdentity("runs-on")


@pytest.fixture
def aws_config() -> AWS:
    return AWS(region="us-east-1", status_check_attempts=30, status_check_interval=10.0)
