from __future__ import annotations

from dataclasses import dataclass, field

from .errors import UsageError

USAGE = """\
Usage: nbtest [--scenario|-s <scenario>] [--out-link-prefix|-o <path>] [<command>] [<args>...]

Modules integration test runner. The tests (tests.nix) use the NixOS testing
framework and are executed in a VM.

Commands:
  build      Build the given scenario, or the basic scenarios when none is given (default)
  basic      Build the scenarios default, netns, netnsRegtest
  all        Build the scenarios default, netns, full, regtest, netnsRegtest
  debug      Start the test VMs and drop into a Python REPL
  run        Run the test driver headless without building the test derivation
  container  Run the scenario in a NixOS container (requires root)
  eval       Print the store path of the scenario's test derivation
  ci         Build the scenario with the CI resource profile
  exprForCI  Print the CI build expression, for piping into 'nix-build -'
  help       Show this message

Arguments after <command> are passed to nix-build (build, basic, all, ci) or to
the container script (container).

When <scenario> is not defined in tests.nix, the test runs with an ad hoc
scenario where services.<scenario> is enabled. To add custom scenarios, set
the environment variable 'scenarioOverridesFile'.

Environment:
  numCPUs, memoryMiB      VM resources (default: host CPUs, 2048 MiB)
  NB_TEST_DIR             Directory containing tests.nix
  NB_TEST_ENABLE_NETWORK  Allow outbound network access from the VM
  QEMU_OPTS, QEMU_NET_OPTS  Extra QEMU options for 'run' and 'debug'
"""

_SCENARIO_FLAGS = ("--scenario", "-s")
_OUT_LINK_FLAGS = ("--out-link-prefix", "-o")
_HELP_FLAGS = ("--help", "-h")


@dataclass
class Invocation:
    command: str = "build"
    args: list[str] = field(default_factory=list)
    scenario: str = ""
    out_link_prefix: str = ""


def parse_args(argv: list[str]) -> Invocation:
    """Parse leading flags; the first other token selects the command.

    Everything after the command token is passed through untouched, so flags
    that appear there belong to the command, not to this parser.
    """
    inv = Invocation()
    idx = 0
    while idx < len(argv):
        token = argv[idx]
        if token in _SCENARIO_FLAGS or token in _OUT_LINK_FLAGS:
            value = argv[idx + 1] if idx + 1 < len(argv) else ""
            if not value:
                raise UsageError(f"Error: {token} requires an argument.")
            if token in _SCENARIO_FLAGS:
                inv.scenario = value
            else:
                inv.out_link_prefix = value
            idx += 2
            continue
        if token in _HELP_FLAGS:
            inv.command = "help"
            return inv
        break

    rest = argv[idx:]
    if rest:
        inv.command = rest[0] or "build"
        inv.args = list(rest[1:])
    return inv
