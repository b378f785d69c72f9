"""AWS EC2 provider for runnerstack.

Example:
    from injector import Injector
    from runnerstack.providers.aws import AWS, AWSModule, StackReconciler

    injector = Injector([AWSModule()])
    injector.binder.bind(AWS, to=AWS(region="us-east-1"))
"""

from runnerstack.providers.aws.ami import ImageResolver
from runnerstack.providers.aws.clients import AWSModule, EC2ClientFactory
from runnerstack.providers.aws.config import AWS
from runnerstack.providers.aws.instances import InstanceProvisioner
from runnerstack.providers.aws.lifecycle import LifecycleManager, ReadinessWaiter
from runnerstack.providers.aws.stack import StackReconciler
from runnerstack.providers.aws.state import (
    Instance,
    LaunchSpec,
    NetworkStack,
    StackIdentity,
    StorageSpec,
)

__all__ = [
    "AWS",
    "AWSModule",
    "EC2ClientFactory",
    "ImageResolver",
    "Instance",
    "InstanceProvisioner",
    "LaunchSpec",
    "LifecycleManager",
    "NetworkStack",
    "ReadinessWaiter",
    "StackIdentity",
    "StackReconciler",
    "StorageSpec",
]
