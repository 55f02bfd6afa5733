from __future__ import annotations


class UserFacingError(Exception):
    """Error reported to the user as a message, without a traceback."""

    def __init__(self, message: str, exit_code: int = 1):
        super().__init__(message)
        self.exit_code = exit_code


class UsageError(UserFacingError):
    """Raised for invalid flags, commands or configuration overrides."""


def describe_returncode(returncode: int) -> tuple[str, int]:
    """Return a description and shell-style exit code for a child's returncode.

    Children killed by a signal report -N; shells report those as 128 + N.
    """
    if returncode < 0:
        return f"killed by signal {-returncode}", 128 - returncode
    return f"exited with status {returncode}", returncode
