from __future__ import annotations

from pathlib import Path

from .config import RunConfig


def nix_string(value: str | Path) -> str:
    """Render a value as a double-quoted Nix string literal."""
    text = str(value)
    escaped = text.replace("\\", "\\\\").replace('"', '\\"').replace("${", "\\${")
    return f'"{escaped}"'


def tests_import_expr(tests_nix: Path, scenario: str) -> str:
    return f"(import {nix_string(tests_nix)} {{ scenario = {nix_string(scenario)}; }})"


def driver_expr(config: RunConfig) -> str:
    """Expression whose 'driver' attribute is the interactive VM test driver."""
    return f"{tests_import_expr(config.tests_nix, config.scenario)}.vm"


def qemu_opts(num_cpus: int, memory_mib: int, *extra: str) -> str:
    return " ".join([f"-smp {num_cpus} -m {memory_mib}", *extra])


def vm_test_expr(config: RunConfig) -> str:
    """Expression for the scenario's VM test derivation.

    The VM resources are injected into the build command, so they take part in
    the derivation hash: changing numCPUs or memoryMiB forces a rebuild.
    """
    opts = qemu_opts(config.num_cpus, config.memory_mib, config.extra_qemu_opts)
    return (
        f"({tests_import_expr(config.tests_nix, config.scenario)}.vm {{}}).overrideAttrs (old: rec {{\n"
        "  buildCommand = ''\n"
        f'    export QEMU_OPTS="{opts}"\n'
        f'    echo "VM stats: CPUs: {config.num_cpus}, memory: {config.memory_mib} MiB"\n'
        "  '' + old.buildCommand;\n"
        "})\n"
    )
