"""Repository-scoped client for the job-coordination service (GitHub REST).

Only the four calls a runner launch needs: repository access check,
push collaborators, their public SSH keys and a just-in-time runner
registration.
"""

from __future__ import annotations

from typing import Any

from loguru import logger

from runnerstack.constants import DEFAULT_GITHUB_BASE_URL
from runnerstack.core.exceptions import ConfigurationError, NotFoundError, RegistrationError
from runnerstack.infra.http import BearerAuth, HttpClient, HttpError

GITHUB_API_VERSION = "2022-11-28"
DEFAULT_RUNNER_GROUP_ID = 1

log = logger.bind(component="github")


class GitHubClient:
    """GitHub REST client bound to one ``owner/repo``."""

    def __init__(
        self,
        repository: str,
        token: str,
        base_url: str = DEFAULT_GITHUB_BASE_URL,
        *,
        http: HttpClient | None = None,
    ) -> None:
        owner, _, repo = repository.partition("/")
        if not owner or not repo:
            raise ConfigurationError(f"Repository information is missing: {repository!r}")
        if not token:
            raise ConfigurationError("A GitHub token is required")

        self.owner = owner
        self.repo = repo
        self._http = http or HttpClient(
            base_url,
            BearerAuth(token),
            default_headers={
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": GITHUB_API_VERSION,
            },
        )

    @property
    def _repo_path(self) -> str:
        return f"/repos/{self.owner}/{self.repo}"

    async def verify_repository_access(self) -> None:
        """Fail unless the token's installation can see the repository."""
        try:
            repos = await self._http.get_all("/installation/repositories", key="repositories")
        except HttpError as e:
            raise RegistrationError(f"Could not list accessible repositories: {e}") from e

        if not any(r.get("name") == self.repo for r in repos):
            raise NotFoundError(
                f"Repository {self.owner}/{self.repo} is not accessible to the installation"
            )
        log.info("Repository {owner}/{repo} is accessible", owner=self.owner, repo=self.repo)

    async def list_collaborators_with_push(self) -> list[str]:
        try:
            users = await self._http.get_all(
                f"{self._repo_path}/collaborators",
                params={"permission": "push", "affiliation": "all"},
            )
        except HttpError as e:
            raise RegistrationError(f"Could not list collaborators: {e}") from e
        return [u["login"] for u in users]

    async def list_public_keys(self, usernames: list[str]) -> list[str]:
        """Public SSH keys of every user, in user order."""
        keys: list[str] = []
        for username in usernames:
            try:
                data = await self._http.get_all(f"/users/{username}/keys")
            except HttpError as e:
                raise RegistrationError(f"Could not fetch SSH keys for {username}: {e}") from e
            keys.extend(k["key"] for k in data)
        log.debug("Fetched {n} SSH keys for {users}", n=len(keys), users=usernames)
        return keys

    async def generate_jit_config(self, label: str) -> str:
        """Register a single-use runner named and labelled ``label``.

        Returns the encoded JIT configuration the agent is started with.
        """
        body: dict[str, Any] = {
            "name": label,
            "runner_group_id": DEFAULT_RUNNER_GROUP_ID,
            "labels": [label],
        }
        try:
            resp = await self._http.post(
                f"{self._repo_path}/actions/runners/generate-jitconfig",
                json=body,
                response_type=dict,
            )
        except HttpError as e:
            raise RegistrationError(f"Runner registration failed: {e}") from e

        config = (resp.data or {}).get("encoded_jit_config")
        if not config:
            raise RegistrationError("Runner registration returned no JIT configuration")
        log.info("Runner {label} registered", label=label)
        return config

    async def close(self) -> None:
        await self._http.close()

    async def __aenter__(self) -> GitHubClient:
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()
