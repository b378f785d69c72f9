"""runnerstack: ephemeral self-hosted CI runners on AWS EC2.

Example:
    import asyncio
    from injector import Injector
    from runnerstack import RunnerLauncher, RunnerModule, load_config

    config = load_config().validate()
    launcher = Injector([RunnerModule(config)]).get(RunnerLauncher)
    outputs = asyncio.run(launcher.launch())
"""

from runnerstack.config import RunnerConfig, load_config
from runnerstack.core.exceptions import (
    ConfigurationError,
    HealthCheckTimeoutError,
    NotFoundError,
    ProvisioningError,
    RegistrationError,
    RunnerStackError,
    StackError,
    TerminationError,
    TimeoutError,
)
from runnerstack.module import RunnerModule
from runnerstack.providers.aws import (
    AWS,
    ImageResolver,
    InstanceProvisioner,
    LifecycleManager,
    ReadinessWaiter,
    StackReconciler,
)
from runnerstack.runner import RunnerLauncher, RunnerOutputs

__version__ = "0.1.0"

__all__ = [
    "AWS",
    "ConfigurationError",
    "HealthCheckTimeoutError",
    "ImageResolver",
    "InstanceProvisioner",
    "LifecycleManager",
    "NotFoundError",
    "ProvisioningError",
    "ReadinessWaiter",
    "RegistrationError",
    "RunnerConfig",
    "RunnerLauncher",
    "RunnerModule",
    "RunnerOutputs",
    "RunnerStackError",
    "StackError",
    "StackReconciler",
    "TerminationError",
    "TimeoutError",
    "load_config",
]
