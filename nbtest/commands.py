from __future__ import annotations

import dataclasses
import sys
from typing import Callable, Iterable

from .config import ALL_SCENARIOS, BASIC_SCENARIOS, CI_QEMU_OPTS, RunConfig
from .container import run_container
from .driver import run_driver
from .expr import vm_test_expr
from .nix import NixClient
from .resources import ci_memory_mib

Handler = Callable[[RunConfig, NixClient, list[str]], None]


def build_test(config: RunConfig, nix: NixClient, args: list[str]) -> None:
    """Run the test by building the scenario's test derivation."""
    print(f"==> building scenario: {config.scenario}", file=sys.stderr)
    nix.build_expr(vm_test_expr(config), out_link=config.out_link(), extra_args=args)


def build_scenarios(
    config: RunConfig,
    nix: NixClient,
    scenarios: Iterable[str],
    args: list[str],
) -> None:
    for scenario in scenarios:
        build_test(dataclasses.replace(config, scenario=scenario), nix, args)


def basic(config: RunConfig, nix: NixClient, args: list[str]) -> None:
    build_scenarios(config, nix, BASIC_SCENARIOS, args)


def all_scenarios(config: RunConfig, nix: NixClient, args: list[str]) -> None:
    build_scenarios(config, nix, ALL_SCENARIOS, args)


def build(config: RunConfig, nix: NixClient, args: list[str]) -> None:
    if config.scenario:
        build_test(config, nix, args)
    else:
        basic(config, nix, args)


def debug(config: RunConfig, nix: NixClient, args: list[str]) -> None:
    run_driver(config, nix, interactive=True)


def run(config: RunConfig, nix: NixClient, args: list[str]) -> None:
    run_driver(config, nix)


def container(config: RunConfig, nix: NixClient, args: list[str]) -> None:
    run_container(config, args)


def eval_test(config: RunConfig, nix: NixClient, args: list[str]) -> None:
    # nix eval doesn't print a newline
    print(nix.eval_raw(f"({vm_test_expr(config)}).outPath"))


def ci_config(config: RunConfig) -> RunConfig:
    """Apply the CI resource profile: host-limited memory, no VMX."""
    return dataclasses.replace(
        config,
        memory_mib=ci_memory_mib(config.num_cpus),
        extra_qemu_opts=CI_QEMU_OPTS,
    )


def build_ci(config: RunConfig, nix: NixClient, args: list[str]) -> None:
    build_test(ci_config(config), nix, args)


def expr_for_ci(config: RunConfig, nix: NixClient, args: list[str]) -> None:
    sys.stdout.write(vm_test_expr(ci_config(config)))


COMMANDS: dict[str, Handler] = {
    "build": build,
    "basic": basic,
    "all": all_scenarios,
    "debug": debug,
    "run": run,
    "container": container,
    "eval": eval_test,
    "ci": build_ci,
    "exprForCI": expr_for_ci,
}
