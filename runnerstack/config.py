"""Runner configuration.

Values come from these layers, later wins:

0. ``GITHUB_REPOSITORY`` and ``GITHUB_TOKEN`` from the CI environment
1. ``runnerstack.toml`` in the working directory (or an explicit path)
2. ``INPUT_<NAME>`` environment variables, the CI action-input convention
   (e.g. ``INPUT_RUNNER-TYPES=m7a.large,m6a.large``)
3. explicit overrides (CLI flags)

Names may use dashes or underscores; they are normalized to underscores.
"""

from __future__ import annotations

import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, TypeAlias

from runnerstack.constants import (
    DEFAULT_GITHUB_BASE_URL,
    DEFAULT_RUNNER_AGENT_VERSION,
    DEFAULT_SPOT_MAX_PRICE,
    DEFAULT_STORAGE_SIZE,
    DEFAULT_STORAGE_TYPE,
    SUPPORTED_RUNNER_ARCHES,
    SUPPORTED_RUNNER_OSES,
)
from runnerstack.core.exceptions import ConfigurationError
from runnerstack.providers.aws.config import AWS

RawConfig: TypeAlias = dict[str, Any]

PROJECT_CONFIG_NAME = "runnerstack.toml"
ENV_PREFIX = "INPUT_"

_BOOL_FIELDS = frozenset({"use_spot_instances", "dry_run", "wait_for_status_checks", "verify_access"})
_LIST_FIELDS = frozenset({"runner_types", "admins"})
_INT_FIELDS = frozenset({"storage_size", "storage_iops", "instance_timeout", "status_check_attempts"})
_FLOAT_FIELDS = frozenset({"status_check_interval"})
_AWS_FIELDS = frozenset(f.name for f in fields(AWS))
_RUNNER_FIELDS = frozenset({
    "runner_os", "runner_arch", "image_id", "runner_types", "storage_type", "storage_size",
    "storage_iops", "use_spot_instances", "spot_max_price", "dry_run", "wait_for_status_checks",
    "admins", "runner_agent_version", "github_base_url", "github_token", "repository",
    "verify_access",
})


@dataclass(frozen=True, slots=True)
class RunnerConfig:
    """Inputs of a single runner launch."""

    runner_os: str = "ubuntu22"
    runner_arch: str = "x64"
    image_id: str = ""
    runner_types: tuple[str, ...] = ()
    storage_type: str = DEFAULT_STORAGE_TYPE
    storage_size: int = DEFAULT_STORAGE_SIZE
    storage_iops: int = 0
    use_spot_instances: bool = False
    spot_max_price: str = DEFAULT_SPOT_MAX_PRICE
    dry_run: bool = False
    wait_for_status_checks: bool = False
    admins: tuple[str, ...] = ()
    runner_agent_version: str = DEFAULT_RUNNER_AGENT_VERSION
    github_base_url: str = DEFAULT_GITHUB_BASE_URL
    github_token: str = field(default="", repr=False)
    repository: str = ""
    verify_access: bool = True
    aws: AWS = field(default_factory=AWS)

    @property
    def owner(self) -> str:
        return self.repository.partition("/")[0]

    @property
    def repo(self) -> str:
        return self.repository.partition("/")[2]

    def validate(self) -> RunnerConfig:
        """Check the inputs before any remote call is made."""
        if not self.runner_types:
            raise ConfigurationError("No runner types specified")

        if not self.image_id:
            if self.runner_os not in SUPPORTED_RUNNER_OSES:
                raise ConfigurationError(
                    f"Unsupported runner OS: {self.runner_os}. "
                    f"Must be one of {', '.join(SUPPORTED_RUNNER_OSES)}"
                )
            if self.runner_arch not in SUPPORTED_RUNNER_ARCHES:
                raise ConfigurationError(
                    f"Unsupported runner arch: {self.runner_arch}. "
                    f"Must be one of {', '.join(SUPPORTED_RUNNER_ARCHES)}"
                )

        if self.storage_size <= 0:
            raise ConfigurationError(f"Storage size must be positive, got {self.storage_size}")

        if not self.owner or not self.repo or "/" in self.repo:
            raise ConfigurationError(
                f"Repository information is missing or malformed: {self.repository!r}"
            )

        return self


# =============================================================================
# Loading
# =============================================================================


def _normalize(name: str) -> str:
    return name.strip().lower().replace("-", "_")


def _coerce(name: str, value: Any) -> Any:
    if name in _BOOL_FIELDS:
        if isinstance(value, str):
            return value.strip().lower() == "true"
        return bool(value)

    if name in _LIST_FIELDS:
        items = value.split(",") if isinstance(value, str) else list(value)
        return tuple(s for s in (str(i).strip() for i in items) if s)

    if name in _INT_FIELDS or name in _FLOAT_FIELDS:
        kind = int if name in _INT_FIELDS else float
        try:
            return kind(value)
        except (TypeError, ValueError):
            raise ConfigurationError(f"Invalid value for {name}: {value!r}") from None

    if name == "region" and value == "":
        return None

    return str(value)


def _nest(flat: Mapping[str, Any]) -> RawConfig:
    """Normalize names and move AWS fields under the ``aws`` key."""
    raw: RawConfig = {}
    for key, value in flat.items():
        name = _normalize(key)
        if name == "aws" and isinstance(value, dict):
            aws = {_normalize(k): v for k, v in value.items()}
            raw["aws"] = {**raw.get("aws", {}), **aws}
        elif name in _AWS_FIELDS:
            raw.setdefault("aws", {})[name] = value
        else:
            raw[name] = value
    return raw


def _deep_merge(base: RawConfig, override: RawConfig) -> RawConfig:
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _read_toml(path: Path) -> RawConfig:
    if not path.is_file():
        return {}
    with path.open("rb") as f:
        return _nest(tomllib.load(f))


def _read_env(environ: Mapping[str, str]) -> RawConfig:
    known = _RUNNER_FIELDS | _AWS_FIELDS
    flat = {
        name: value
        for key, value in environ.items()
        if key.startswith(ENV_PREFIX) and value != ""
        and (name := _normalize(key.removeprefix(ENV_PREFIX))) in known
    }
    return _nest(flat)


def from_raw(raw: RawConfig) -> RunnerConfig:
    """Build a RunnerConfig from a nested mapping of normalized names.

    Raises:
        ConfigurationError: On unknown keys or values that do not coerce.
    """
    aws_raw = dict(raw.get("aws", {}))
    values = {k: v for k, v in raw.items() if k != "aws"}

    unknown = (set(values) - _RUNNER_FIELDS) | {f"aws.{k}" for k in set(aws_raw) - _AWS_FIELDS}
    if unknown:
        raise ConfigurationError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

    aws = AWS(**{k: _coerce(k, v) for k, v in aws_raw.items()})
    return RunnerConfig(aws=aws, **{k: _coerce(k, v) for k, v in values.items()})


def load_config(
    *,
    path: Path | None = None,
    environ: Mapping[str, str] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> RunnerConfig:
    """Merge file, environment and overrides into a RunnerConfig.

    The repository and token default to ``GITHUB_REPOSITORY`` and
    ``GITHUB_TOKEN`` when no layer sets them.
    Overrides set to None are ignored.
    """
    env = os.environ if environ is None else environ

    ambient = {
        name: env[var]
        for name, var in (("repository", "GITHUB_REPOSITORY"), ("github_token", "GITHUB_TOKEN"))
        if env.get(var)
    }
    layers: list[RawConfig] = [
        ambient,
        _read_toml(path or Path.cwd() / PROJECT_CONFIG_NAME),
        _read_env(env),
        _nest({k: v for k, v in (overrides or {}).items() if v is not None}),
    ]

    merged: RawConfig = {}
    for layer in layers:
        merged = _deep_merge(merged, layer)
    return from_raw(merged)
