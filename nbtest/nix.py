from __future__ import annotations

import os
import shlex
import subprocess
from pathlib import Path
from typing import Mapping

from .errors import UserFacingError, describe_returncode

NIX_COMMAND_FLAGS = ["--extra-experimental-features", "nix-command"]


class NixError(UserFacingError):
    """Raised when a Nix tool cannot be started or exits unsuccessfully."""


class NixClient:
    """Thin wrapper around the nix and nix-build command line tools.

    Build output is streamed to the terminal; only evaluations capture stdout.
    """

    def __init__(self, nix_path: str = ""):
        self.nix_path = nix_path

    def child_env(self, extra: Mapping[str, str] | None = None) -> dict[str, str]:
        env = os.environ.copy()
        if self.nix_path:
            env["NIX_PATH"] = self.nix_path
        if extra:
            env.update(extra)
        return env

    def _run(
        self,
        args: list[str],
        *,
        input_text: str | None = None,
        capture_output: bool = False,
        env: Mapping[str, str] | None = None,
    ) -> subprocess.CompletedProcess[str]:
        try:
            proc = subprocess.run(
                args,
                input=input_text,
                check=False,
                text=True,
                capture_output=capture_output,
                env=self.child_env(env),
            )
        except FileNotFoundError as exc:
            raise NixError(f"Command not found: {args[0]}") from exc
        except OSError as exc:
            raise NixError(f"Could not run command '{shlex.join(args)}': {exc}") from exc
        if proc.returncode != 0:
            details = ((proc.stderr or "").strip() or (proc.stdout or "").strip()) if capture_output else ""
            status, exit_code = describe_returncode(proc.returncode)
            message = f"{args[0]} {status}"
            if details:
                message = f"{message}: {details}"
            raise NixError(message, exit_code=exit_code)
        return proc

    def build_expr(
        self,
        expr: str,
        *,
        out_link: str | None = None,
        extra_args: list[str] | None = None,
    ) -> None:
        """Build the expression read from stdin, like `... | nix-build -`."""
        if out_link:
            link_args = ["--out-link", out_link]
        else:
            link_args = ["--no-out-link"]
        self._run(["nix-build", *link_args, *(extra_args or []), "-"], input_text=expr)

    def build_attr(
        self,
        expr: str,
        attr: str,
        *,
        out_link: Path,
        env: Mapping[str, str] | None = None,
    ) -> Path:
        self._run(
            ["nix-build", "--out-link", str(out_link), "-E", expr, "-A", attr],
            env=env,
        )
        return out_link

    def eval_raw(self, expr: str) -> str:
        proc = self._run(
            ["nix", *NIX_COMMAND_FLAGS, "eval", "--raw", "--impure", "--expr", expr],
            capture_output=True,
        )
        return proc.stdout

    def eval_file_attr(self, file: Path, attr: str) -> str:
        proc = self._run(
            ["nix", *NIX_COMMAND_FLAGS, "eval", "--raw", "-f", str(file), attr],
            capture_output=True,
        )
        return proc.stdout.strip()


def pinned_nix_path(client: NixClient, test_dir: Path) -> str:
    """Return a NIX_PATH value pointing nixpkgs at the pinned revision."""
    pinned = test_dir.parent / "pkgs" / "nixpkgs-pinned.nix"
    if not pinned.exists():
        raise NixError(f"Error: Pinned nixpkgs file not found: {pinned}")
    return f"nixpkgs={client.eval_file_attr(pinned, 'nixpkgs')}"
