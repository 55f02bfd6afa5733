from __future__ import annotations

import os
import shlex
import shutil
import subprocess
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Mapping

from .config import ENABLE_NETWORK_ENV, TMP_PREFIX, TMP_ROOT, RunConfig
from .errors import UserFacingError, describe_returncode
from .expr import driver_expr
from .nix import NixClient

DRIVER_BIN = Path("bin") / "nixos-test-driver"
RESTRICTED_NET_OPTS = "restrict=on"

# Python code executed by the driver on startup
HEADLESS_SCRIPT = 'exec(os.environ["testScript"])'
INTERACTIVE_SCRIPT = "\n".join(
    [
        "is_interactive = True",
        HEADLESS_SCRIPT,
        "start_all()",
        "import code",
        "code.interact(local=globals())",
    ]
)


class DriverError(UserFacingError):
    """Raised when the VM test driver cannot be started or fails."""


@contextmanager
def temporary_test_dir(root: str | Path = TMP_ROOT, prefix: str = TMP_PREFIX) -> Iterator[Path]:
    """Create a private working directory that is removed on every exit path.

    The driver also uses it for VM disk images and sockets, so nothing is left
    on the host after the run.
    """
    path = Path(tempfile.mkdtemp(prefix=prefix, dir=str(root)))
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)


def driver_script(interactive: bool) -> str:
    return INTERACTIVE_SCRIPT if interactive else HEADLESS_SCRIPT


def driver_env(
    config: RunConfig,
    tmp_dir: Path,
    tests: str,
    environ: Mapping[str, str],
) -> dict[str, str]:
    """Build the complete driver environment; nothing else is inherited."""
    if environ.get(ENABLE_NETWORK_ENV):
        net_opts = environ.get("QEMU_NET_OPTS", "")
    else:
        net_opts = RESTRICTED_NET_OPTS
    qemu_opts = f"-smp {config.num_cpus} -m {config.memory_mib} -nographic {environ.get('QEMU_OPTS', '')}"
    return {
        "NIX_PATH": config.nix_path,
        "TMPDIR": str(tmp_dir),
        "USE_TMPDIR": "1",
        "NIX_DISK_IMAGE": str(tmp_dir / "img.qcow2"),
        "tests": tests,
        "QEMU_OPTS": qemu_opts,
        "QEMU_NET_OPTS": net_opts,
    }


def wait_for_driver(proc: subprocess.Popen, *, interactive: bool) -> int:
    """Wait for the driver process and return its exit status.

    Ctrl-C reaches the whole foreground process group. The interactive REPL
    handles it itself, so the session keeps running and so do we. A headless
    driver is killed and the interrupt propagates.
    """
    while True:
        try:
            return proc.wait()
        except KeyboardInterrupt:
            if interactive:
                continue
            if proc.poll() is None:
                proc.kill()
                proc.wait()
            raise


def run_driver(
    config: RunConfig,
    nix: NixClient,
    *,
    interactive: bool = False,
    environ: Mapping[str, str] | None = None,
    tmp_root: str | Path = TMP_ROOT,
) -> None:
    env_in = os.environ if environ is None else environ
    with temporary_test_dir(tmp_root) as tmp_dir:
        # TMPDIR is also used by the test driver for VM tmp files
        driver_link = nix.build_attr(
            driver_expr(config),
            "driver",
            out_link=tmp_dir / "driver",
            env={"TMPDIR": str(tmp_dir)},
        )

        if interactive:
            print("Running interactive testing environment", flush=True)
        tests = driver_script(interactive)

        print(f"VM stats: CPUs: {config.num_cpus}, memory: {config.memory_mib} MiB", flush=True)
        driver_bin = driver_link / DRIVER_BIN
        try:
            # The VM creates a VDE control socket in its working directory
            proc = subprocess.Popen(
                [str(driver_bin)],
                cwd=tmp_dir,
                env=driver_env(config, tmp_dir, tests, env_in),
            )
        except FileNotFoundError as exc:
            raise DriverError(f"Command not found: {driver_bin}") from exc
        except OSError as exc:
            raise DriverError(f"Could not run command '{shlex.quote(str(driver_bin))}': {exc}") from exc
        returncode = wait_for_driver(proc, interactive=interactive)
        if returncode != 0:
            status, exit_code = describe_returncode(returncode)
            raise DriverError(f"Test driver {status}", exit_code=exit_code)
