from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from .cli import Invocation
from .errors import UsageError
from .resources import DEFAULT_MEMORY_MIB, host_cpu_count

# A basic subset of tests that keeps the total runtime within manageable
# bounds (<4 min on desktop systems). These also run on CI.
BASIC_SCENARIOS = ("default", "netns", "netnsRegtest")
ALL_SCENARIOS = ("default", "netns", "full", "regtest", "netnsRegtest")
DEFAULT_SCENARIO = "default"

# VMX is usually not available on CI nodes due to recursive virtualisation.
# Without disabling it, QEMU fails with "failed to set MSR 0x48b".
CI_QEMU_OPTS = "-cpu host,-vmx"

TMP_PREFIX = "nix-bitcoin-test."
TMP_ROOT = "/tmp"

TEST_DIR_ENV = "NB_TEST_DIR"
ENABLE_NETWORK_ENV = "NB_TEST_ENABLE_NETWORK"


@dataclass(frozen=True)
class RunConfig:
    test_dir: Path
    scenario: str
    out_link_prefix: str
    num_cpus: int
    memory_mib: int
    extra_qemu_opts: str = ""
    nix_path: str = ""

    @property
    def tests_nix(self) -> Path:
        return self.test_dir / "tests.nix"

    def out_link(self) -> str | None:
        if not self.out_link_prefix:
            return None
        return f"{self.out_link_prefix}-{self.scenario}"


def resolve_test_dir(environ: Mapping[str, str], cwd: Path | None = None) -> Path:
    raw = environ.get(TEST_DIR_ENV, "")
    if raw:
        return Path(raw).expanduser().resolve()
    base = cwd or Path.cwd()
    candidate = base / "test"
    if (candidate / "tests.nix").exists():
        return candidate.resolve()
    return base.resolve()


def _positive_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name, "")
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise UsageError(f"Error: {name} must be an integer, got: {raw}") from exc
    if value < 1:
        raise UsageError(f"Error: {name} must be >= 1, got: {value}")
    return value


def load_run_config(
    invocation: Invocation,
    environ: Mapping[str, str] | None = None,
    cwd: Path | None = None,
) -> RunConfig:
    env = os.environ if environ is None else environ
    scenario = invocation.scenario
    if invocation.command != "build" and not scenario:
        scenario = DEFAULT_SCENARIO
    return RunConfig(
        test_dir=resolve_test_dir(env, cwd),
        scenario=scenario,
        out_link_prefix=invocation.out_link_prefix,
        num_cpus=_positive_int(env, "numCPUs", host_cpu_count()),
        memory_mib=_positive_int(env, "memoryMiB", DEFAULT_MEMORY_MIB),
    )
