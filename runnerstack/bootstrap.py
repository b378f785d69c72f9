"""Runner bootstrap: label, admin expansion and the user-data script.

The user-data script is composed from small operations, each a string or
a callable returning one, and resolved in order.
"""

from __future__ import annotations

import secrets
from collections.abc import Awaitable, Callable, Sequence
from typing import Final, TypeAlias

from loguru import logger

from runnerstack.constants import (
    AGENT_DIR,
    AGENT_FULL_TIMEOUT,
    AGENT_USER,
    AGENT_WAIT_TIMEOUT,
    COLLABORATORS_PLACEHOLDER,
    DEFAULT_STACK_NAME,
)

log = logger.bind(component="bootstrap")

AGENT_RELEASES_URL: Final = "https://github.com/actions/runner/releases/download"

# =============================================================================
# Label & Admins
# =============================================================================


def generate_label(stack_name: str = DEFAULT_STACK_NAME) -> str:
    """Random runner label, e.g. ``runs-on-aws-3f9c1a2b7d4e``."""
    return f"{stack_name}-aws-{secrets.token_hex(6)}"


async def expand_admins(
    admins: Sequence[str],
    fetch_collaborators: Callable[[], Awaitable[list[str]]],
) -> list[str]:
    """Replace the collaborators placeholder with the push collaborators.

    Order is kept and duplicates are dropped. Without the placeholder the
    admins are returned unchanged and nothing is fetched.
    """
    if COLLABORATORS_PLACEHOLDER not in admins:
        return list(admins)

    collaborators = await fetch_collaborators()
    expanded: list[str] = []
    for admin in admins:
        expanded.extend(collaborators if admin == COLLABORATORS_PLACEHOLDER else [admin])
    return list(dict.fromkeys(expanded))


# =============================================================================
# Script Composition
# =============================================================================

Op: TypeAlias = "str | Callable[[], str] | list[Op]"


def resolve(op: Op) -> str:
    match op:
        case str(op):
            return op
        case list(op):
            return "\n".join(resolve(o) for o in op)
        case _:
            return op()


HEADER: Final = """#!/bin/bash
set -e ; set -o pipefail

# shut the instance down whenever the script exits
cleanup() {
  echo "Going to shut down in a few seconds..."
  sleep 1m
  shutdown -h now
}
trap cleanup EXIT INT TERM
"""


def echo(message: str) -> Op:
    return f'echo "{message}..."'


def strip_system() -> Op:
    return [
        echo("Removing useless stuff"),
        "rm -rf /etc/cron.d/* /etc/cron.hourly/* /etc/cron.daily/* /etc/cron.monthly/* /etc/cron.weekly/*",
        "systemctl stop e2scrub_all e2scrub_all.timer || true",
        "if [ -f /usr/lib/ubuntu-release-upgrader/check-new-release ]; then",
        '  echo "" > /usr/lib/ubuntu-release-upgrader/check-new-release',
        "fi",
    ]


def hostname(label: str) -> Op:
    return [
        echo("Setting up hostname"),
        f"hostnamectl set-hostname {label}",
        f"echo '127.0.0.1 {label}' >> /etc/hosts",
    ]


def agent_env(agent_version: str) -> Op:
    return [
        f"AGENT_USER={AGENT_USER}",
        f"AGENT_DIR={AGENT_DIR}",
        f"AGENT_FULL_TIMEOUT={AGENT_FULL_TIMEOUT}",
        f"AGENT_WAIT_TIMEOUT={AGENT_WAIT_TIMEOUT}",
        f"AGENT_VERSION={agent_version}",
    ]


def authorized_keys(keys: Sequence[str]) -> Op:
    """Append the admins' public keys to the agent user's authorized_keys."""

    def generate() -> str:
        lines = [
            echo("Setting up SSH access"),
            "mkdir -p /home/$AGENT_USER/.ssh && chown $AGENT_USER:$AGENT_USER /home/$AGENT_USER",
        ]
        if keys:
            lines += [
                "cat >> /home/$AGENT_USER/.ssh/authorized_keys <<'EOF'",
                *keys,
                "EOF",
            ]
        lines += [
            "touch /home/$AGENT_USER/.ssh/authorized_keys",
            "chown -R $AGENT_USER:$AGENT_USER /home/$AGENT_USER/.ssh",
            "chmod 700 /home/$AGENT_USER/.ssh && chmod 600 /home/$AGENT_USER/.ssh/authorized_keys",
            "usermod -aG docker $AGENT_USER",
        ]
        return "\n".join(lines)

    return generate


def watchdogs() -> Op:
    # the wait watchdog fires when no job was picked up in time
    return [
        echo("Installing watchdogs"),
        "sleep $AGENT_WAIT_TIMEOUT && \\",
        '  if ! ( grep "ProcessChannel" $AGENT_DIR/_diag/*.log | grep "Receiving message" ) ; '
        'then echo "Wait timeout reached. Shutting down instance." && cleanup ; fi &',
        "",
        "sleep $AGENT_FULL_TIMEOUT && \\",
        '  echo "Full timeout reached. Shutting down instance." && cleanup &',
    ]


def docker_check() -> Op:
    return [echo("Making sure docker works"), "time docker ps"]


def install_agent() -> Op:
    tarball = "actions-runner-linux-x64-$AGENT_VERSION.tar.gz"
    return [
        echo("Installing agent"),
        "mkdir -p $AGENT_DIR",
        f"time curl -o {tarball} -L {AGENT_RELEASES_URL}/v$AGENT_VERSION/{tarball}",
        f"time tar xzf ./{tarball} -C $AGENT_DIR",
        "chown -R $AGENT_USER:$AGENT_USER $AGENT_DIR",
    ]


def launch_agent(jit_config: str) -> Op:
    return [
        echo("Launching agent"),
        f'su - $AGENT_USER -c "cd $AGENT_DIR && ./run.sh --jitconfig {jit_config}"',
    ]


def render_user_data(
    jit_config: str,
    ssh_keys: Sequence[str],
    label: str,
    agent_version: str,
) -> str:
    """Render the first-boot script of a runner instance.

    The script installs the agent, starts it with the single-use JIT
    configuration and shuts the instance down when the agent exits or
    when either watchdog fires.
    """
    script = resolve([
        HEADER,
        strip_system(),
        "",
        hostname(label),
        "",
        agent_env(agent_version),
        "",
        authorized_keys(ssh_keys),
        "",
        watchdogs(),
        "",
        docker_check(),
        "",
        install_agent(),
        "",
        launch_agent(jit_config),
    ])
    log.debug("Rendered user data for {label} ({n} bytes)", label=label, n=len(script))
    return script + "\n"
