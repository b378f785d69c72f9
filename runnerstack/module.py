"""Central DI module.

Binds the run configuration and everything derived from it; AWS clients
come from ``AWSModule``.
"""

from __future__ import annotations

from injector import Binder, Module, provider, singleton

from .config import RunnerConfig
from .github import GitHubClient
from .providers.aws import AWS, AWSModule, StackIdentity


class RunnerModule(Module):
    """Module for one runner launch.

    Usage:
        injector = Injector([RunnerModule(config)])
        launcher = injector.get(RunnerLauncher)
    """

    def __init__(self, config: RunnerConfig) -> None:
        self._config = config

    def configure(self, binder: Binder) -> None:
        binder.bind(RunnerConfig, to=self._config)
        binder.bind(AWS, to=self._config.aws)
        binder.bind(StackIdentity, to=StackIdentity(self._config.aws.stack_name))
        binder.install(AWSModule())

    @singleton
    @provider
    def provide_github(self, config: RunnerConfig) -> GitHubClient:
        """Provide the GitHub client for the configured repository."""
        return GitHubClient(config.repository, config.github_token, config.github_base_url)


__all__ = [
    "RunnerModule",
]
