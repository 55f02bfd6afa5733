from __future__ import annotations

import dataclasses
import signal
import sys
from typing import Callable

from .cli import USAGE, Invocation, parse_args
from .commands import COMMANDS
from .config import load_run_config
from .errors import UsageError, UserFacingError
from .nix import NixClient, pinned_nix_path

EXIT_INTERRUPTED = 130


def _exit_on_sigterm(signum, _frame) -> None:
    # Unwind through the cleanup handlers instead of dying in place
    raise SystemExit(128 + signum)


def main_guard(fn: Callable[[], int]) -> int:
    previous = signal.signal(signal.SIGTERM, _exit_on_sigterm)
    try:
        return fn()
    except UsageError as exc:
        print(str(exc), file=sys.stderr)
        print("Run 'nbtest --help' for usage.", file=sys.stderr)
        return exc.exit_code
    except UserFacingError as exc:
        print(str(exc), file=sys.stderr)
        return exc.exit_code
    except KeyboardInterrupt:
        print("Interrupted.", file=sys.stderr)
        return EXIT_INTERRUPTED
    finally:
        if previous is not None:
            signal.signal(signal.SIGTERM, previous)


def dispatch(invocation: Invocation) -> int:
    if invocation.command == "help":
        print(USAGE, end="")
        return 0
    handler = COMMANDS.get(invocation.command)
    if handler is None:
        raise UsageError(f"Error: Unknown command: {invocation.command}")

    config = load_run_config(invocation)
    nix = NixClient()
    nix.nix_path = pinned_nix_path(nix, config.test_dir)
    config = dataclasses.replace(config, nix_path=nix.nix_path)
    handler(config, nix, invocation.args)
    return 0


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    return main_guard(lambda: dispatch(parse_args(args)))


if __name__ == "__main__":
    raise SystemExit(main())
