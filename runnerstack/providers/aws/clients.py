"""EC2 client access for injected components.

Components never hold a client; they open one per operation:

    async with self._ec2() as ec2:
        await ec2.describe_vpcs(...)
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any, TypeAlias

import aioboto3
from injector import Module, provider, singleton

from .config import AWS

ClientContext: TypeAlias = AbstractAsyncContextManager[Any]


class EC2ClientFactory:
    """Opens EC2 clients. Tests swap in a factory yielding a fake client."""

    def __init__(self, open_client: Callable[[], ClientContext]) -> None:
        self._open_client = open_client

    def __call__(self) -> ClientContext:
        return self._open_client()


class AWSModule(Module):
    """Provides the shared aioboto3 session and the EC2 client factory.

    Requires an ``AWS`` binding for the region.
    """

    @singleton
    @provider
    def provide_session(self) -> aioboto3.Session:
        return aioboto3.Session()

    @singleton
    @provider
    def provide_ec2(self, session: aioboto3.Session, config: AWS) -> EC2ClientFactory:
        @asynccontextmanager
        async def open_client() -> AsyncIterator[Any]:
            async with session.client("ec2", region_name=config.region) as ec2:
                yield ec2

        return EC2ClientFactory(open_client)


__all__ = [
    "AWSModule",
    "EC2ClientFactory",
]
