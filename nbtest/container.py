from __future__ import annotations

import os
import shlex
import subprocess
from pathlib import Path

from .config import RunConfig
from .errors import UserFacingError, describe_returncode

CONTAINER_SCRIPT = Path("lib") / "make-container.sh"


class ContainerError(UserFacingError):
    """Raised when the container script is missing or fails."""


def container_command(config: RunConfig, args: list[str]) -> list[str]:
    return ["bash", str(config.test_dir / CONTAINER_SCRIPT), *args]


def container_env(config: RunConfig) -> dict[str, str]:
    env = os.environ.copy()
    env["scenario"] = config.scenario
    env["testDir"] = str(config.test_dir)
    if config.nix_path:
        env["NIX_PATH"] = config.nix_path
    return env


def run_container(config: RunConfig, args: list[str]) -> None:
    """Run the scenario in a NixOS container via lib/make-container.sh.

    Containers start much faster than VMs, which makes them useful for quick
    experiments. Creating NixOS containers requires root on the host.
    """
    script = config.test_dir / CONTAINER_SCRIPT
    if not script.exists():
        raise ContainerError(f"Error: Container script not found: {script}")
    cmd = container_command(config, args)
    try:
        proc = subprocess.run(cmd, check=False, env=container_env(config))
    except FileNotFoundError as exc:
        raise ContainerError(f"Command not found: {cmd[0]}") from exc
    except OSError as exc:
        raise ContainerError(f"Could not run command '{shlex.join(cmd)}': {exc}") from exc
    if proc.returncode != 0:
        status, exit_code = describe_returncode(proc.returncode)
        raise ContainerError(f"Container script {status}", exit_code=exit_code)
