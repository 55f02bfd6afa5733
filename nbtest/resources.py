from __future__ import annotations

import os
import sys
from pathlib import Path

from .errors import UserFacingError

MEMINFO_PATH = Path("/proc/meminfo")

# Min. 800 MiB needed to avoid 'out of memory' errors
DEFAULT_MEMORY_MIB = 2048
# CI nodes run few other processes alongside the test, so give the VM more.
CI_MEMORY_MIB = 3072
# Rounding available memory keeps the build inputs stable for caching
MEMORY_ROUND_MIB = 50


def host_cpu_count() -> int:
    """Return the number of CPUs usable by this process, like nproc(1)."""
    if hasattr(os, "sched_getaffinity"):
        try:
            return len(os.sched_getaffinity(0)) or 1
        except OSError:
            pass
    return os.cpu_count() or 1


def read_meminfo(path: Path = MEMINFO_PATH) -> dict[str, int]:
    """Parse /proc/meminfo into a mapping of field name to KiB."""
    values: dict[str, int] = {}
    for line in path.read_text(encoding="utf-8").splitlines():
        name, sep, rest = line.partition(":")
        if not sep:
            continue
        fields = rest.split()
        if not fields:
            continue
        try:
            values[name.strip()] = int(fields[0])
        except ValueError:
            continue
    return values


def round_down_mib(kib: int, step_mib: int = MEMORY_ROUND_MIB) -> int:
    return kib // (1024 * step_mib) * step_mib


def cap_memory_mib(requested_mib: int, available_kib: int) -> int:
    """Clamp requested VM memory to the host's available memory.

    Available memory is rounded down to a multiple of MEMORY_ROUND_MIB first.
    """
    available_mib = round_down_mib(available_kib)
    if available_mib < requested_mib:
        return available_mib
    return requested_mib


def ci_memory_mib(num_cpus: int, meminfo_path: Path = MEMINFO_PATH) -> int:
    try:
        meminfo = read_meminfo(meminfo_path)
    except OSError as exc:
        raise UserFacingError(f"Error: Could not read {meminfo_path}: {exc}") from exc
    try:
        total_kib = meminfo["MemTotal"]
        available_kib = meminfo["MemAvailable"]
    except KeyError as exc:
        raise UserFacingError(f"Error: {meminfo_path} has no {exc.args[0]} field") from exc
    memory_mib = cap_memory_mib(CI_MEMORY_MIB, available_kib)
    print(f"VM stats: CPUs: {num_cpus}, memory: {memory_mib} MiB", file=sys.stderr)
    print(
        f"Host memory total: {total_kib // 1024} MiB, "
        f"available: {round_down_mib(available_kib)} MiB",
        file=sys.stderr,
    )
    return memory_mib
