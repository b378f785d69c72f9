"""Network stack reconciliation for runner instances.

Discovers or creates a VPC, internet gateway, subnet and security group
tagged with the stack identity. Discovery goes through tag filters on
every run, so no identifiers are stored locally and repeated runs reuse
the same resources.
"""

from __future__ import annotations

from typing import Any

from botocore.exceptions import ClientError
from injector import inject
from loguru import logger

from runnerstack.constants import ADMIN_PORT, DEFAULT_ROUTE_CIDR, SUBNET_CIDR, VPC_CIDR
from runnerstack.core.exceptions import StackError

from .clients import EC2ClientFactory
from .state import NetworkStack, Reconciled, StackIdentity

log = logger.bind(component="stack")


def first_match(response: dict[str, Any], key: str) -> dict[str, Any] | None:
    """Return the first resource of a describe response, or None."""
    items = response.get(key) or []
    return items[0] if items else None


class StackReconciler:
    """Idempotently ensures the network stack exists.

    Resources are handled in dependency order: VPC, internet gateway,
    subnet, security group. Any API failure aborts the reconciliation
    with StackError; a half-built stack is never returned.
    """

    @inject
    def __init__(self, ec2: EC2ClientFactory, identity: StackIdentity) -> None:
        self._ec2 = ec2
        self._identity = identity
        self._log = log.bind(stack=identity.name)

    async def ensure_stack(self) -> NetworkStack:
        async with self._ec2() as ec2:
            try:
                vpc = await self._ensure_vpc(ec2)
                igw = await self._ensure_internet_gateway(ec2, vpc.id)
                subnet = await self._ensure_subnet(ec2, vpc.id)
                security_group = await self._ensure_security_group(ec2, vpc.id)
            except ClientError as e:
                raise StackError(f"Failed to set up stack {self._identity.name}: {e}") from e

        stack = NetworkStack(
            vpc=vpc,
            internet_gateway=igw,
            subnet=subnet,
            security_group=security_group,
        )
        self._log.info(
            "Stack ready (created: {created})",
            created=", ".join(stack.created) or "nothing",
        )
        return stack

    def _reuse(self, kind: str, resource_id: str, raw: dict[str, Any]) -> Reconciled:
        self._log.info("Existing {kind} found: {id}", kind=kind, id=resource_id)
        return Reconciled(kind=kind, id=resource_id, created=False, raw=raw)

    def _vpc_filters(self, vpc_id: str) -> list[dict[str, Any]]:
        return [{"Name": "vpc-id", "Values": [vpc_id]}, *self._identity.filters]

    # -------------------------------------------------------------------------
    # VPC
    # -------------------------------------------------------------------------

    async def _ensure_vpc(self, ec2: Any) -> Reconciled:
        response = await ec2.describe_vpcs(Filters=self._identity.filters)
        if vpc := first_match(response, "Vpcs"):
            return self._reuse("vpc", vpc["VpcId"], vpc)

        self._log.warning("No existing VPC found, creating a new one...")
        response = await ec2.create_vpc(
            CidrBlock=VPC_CIDR,
            TagSpecifications=[
                self._identity.tag_specification("vpc", self._identity.resource_name("vpc")),
            ],
        )
        vpc = response["Vpc"]
        self._log.info("VPC created: {id}", id=vpc["VpcId"])
        return Reconciled(kind="vpc", id=vpc["VpcId"], created=True, raw=vpc)

    # -------------------------------------------------------------------------
    # Internet Gateway
    # -------------------------------------------------------------------------

    async def _ensure_internet_gateway(self, ec2: Any, vpc_id: str) -> Reconciled:
        response = await ec2.describe_internet_gateways(
            Filters=[{"Name": "attachment.vpc-id", "Values": [vpc_id]}, *self._identity.filters]
        )
        # A reused gateway is not re-linked; a run interrupted before create_route leaves it unrouted.
        if igw := first_match(response, "InternetGateways"):
            return self._reuse("internet-gateway", igw["InternetGatewayId"], igw)

        self._log.warning("No existing internet gateway found, creating a new one...")
        response = await ec2.create_internet_gateway(
            TagSpecifications=[
                self._identity.tag_specification(
                    "internet-gateway", self._identity.resource_name("igw"),
                ),
            ],
        )
        igw = response["InternetGateway"]
        igw_id = igw["InternetGatewayId"]
        self._log.info("Internet gateway created: {id}", id=igw_id)

        await ec2.attach_internet_gateway(InternetGatewayId=igw_id, VpcId=vpc_id)
        self._log.info("Internet gateway attached to VPC {vpc}", vpc=vpc_id)

        await self._add_default_route(ec2, vpc_id, igw_id)
        return Reconciled(kind="internet-gateway", id=igw_id, created=True, raw=igw)

    async def _add_default_route(self, ec2: Any, vpc_id: str, igw_id: str) -> None:
        response = await ec2.describe_route_tables(
            Filters=[
                {"Name": "vpc-id", "Values": [vpc_id]},
                {"Name": "association.main", "Values": ["true"]},
            ]
        )
        route_table = first_match(response, "RouteTables")
        if route_table is None:
            raise StackError(f"No main route table found for VPC {vpc_id}")

        route_table_id = route_table["RouteTableId"]
        await ec2.create_route(
            DestinationCidrBlock=DEFAULT_ROUTE_CIDR,
            GatewayId=igw_id,
            RouteTableId=route_table_id,
        )
        self._log.info("Default route to {igw} added in {rtb}", igw=igw_id, rtb=route_table_id)

    # -------------------------------------------------------------------------
    # Subnet
    # -------------------------------------------------------------------------

    async def _ensure_subnet(self, ec2: Any, vpc_id: str) -> Reconciled:
        response = await ec2.describe_subnets(Filters=self._vpc_filters(vpc_id))
        if subnet := first_match(response, "Subnets"):
            result = self._reuse("subnet", subnet["SubnetId"], subnet)
        else:
            self._log.warning("No existing subnet found, creating a new one...")
            response = await ec2.create_subnet(
                VpcId=vpc_id,
                CidrBlock=SUBNET_CIDR,
                TagSpecifications=[
                    self._identity.tag_specification(
                        "subnet", self._identity.resource_name("subnet"),
                    ),
                ],
            )
            subnet = response["Subnet"]
            self._log.info("Subnet created: {id}", id=subnet["SubnetId"])
            result = Reconciled(kind="subnet", id=subnet["SubnetId"], created=True, raw=subnet)

        # Applied on every run; a reused subnet may predate this setting.
        await ec2.modify_subnet_attribute(
            SubnetId=result.id,
            MapPublicIpOnLaunch={"Value": True},
        )
        self._log.debug("MapPublicIpOnLaunch enabled for subnet {id}", id=result.id)
        return result

    # -------------------------------------------------------------------------
    # Security Group
    # -------------------------------------------------------------------------

    async def _ensure_security_group(self, ec2: Any, vpc_id: str) -> Reconciled:
        response = await ec2.describe_security_groups(Filters=self._vpc_filters(vpc_id))
        # A reused group is not re-authorized; ingress is only added on creation.
        if group := first_match(response, "SecurityGroups"):
            return self._reuse("security-group", group["GroupId"], group)

        self._log.warning("No existing security group found, creating a new one...")
        group_name = self._identity.resource_name("sg")
        response = await ec2.create_security_group(
            GroupName=group_name,
            Description=f"Security group for {self._identity.name} stack",
            VpcId=vpc_id,
            TagSpecifications=[
                self._identity.tag_specification("security-group", group_name),
            ],
        )
        group_id = response["GroupId"]
        self._log.info("Security group created: {id}", id=group_id)

        await ec2.authorize_security_group_ingress(
            GroupId=group_id,
            IpPermissions=[
                {
                    "IpProtocol": "tcp",
                    "FromPort": ADMIN_PORT,
                    "ToPort": ADMIN_PORT,
                    "IpRanges": [{"CidrIp": DEFAULT_ROUTE_CIDR, "Description": "SSH"}],
                }
            ],
        )
        self._log.info("Ingress rule for SSH added to {id}", id=group_id)
        return Reconciled(kind="security-group", id=group_id, created=True, raw=response)
