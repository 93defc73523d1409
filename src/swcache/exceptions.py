"""Exception hierarchy for swcache.

All exceptions inherit from :class:`SwcacheError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`swcache.exit_codes`.
The CLI entry point in :func:`swcache.app.main` catches ``SwcacheError``
and exits with the matching code.

Subclass hierarchy::

    SwcacheError (exit 1)
    +-- NetworkFailure   (exit 6)
    +-- PartitionMiss    (exit 4)
    +-- InstallFailure   (exit 7)
    +-- ProtocolError    (exit 2)
    +-- ConfigError      (exit 1)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Sequence

from swcache.exit_codes import (
    EXIT_GENERIC_FAILURE,
    EXIT_INSTALL_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_NETWORK_FAILURE,
    EXIT_NOT_FOUND,
)

if TYPE_CHECKING:
    import httpx


class SwcacheError(Exception):
    """Base exception for all swcache errors.

    Args:
        message: Human-readable error description.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class NetworkFailure(SwcacheError):
    """Raised when a fetch is rejected, times out, or returns a non-ok status.

    When the server did answer, the offending response is kept on
    :attr:`response` so callers can inspect it.
    """

    exit_code = EXIT_NETWORK_FAILURE

    def __init__(
        self,
        message: str,
        response: Optional[httpx.Response] = None,
        exit_code: int | None = None,
    ):
        super().__init__(message, exit_code)
        self.response = response


class PartitionMiss(SwcacheError):
    """Raised when a lookup in a partition finds no entry."""

    exit_code = EXIT_NOT_FOUND

    def __init__(self, partition: str, key: str):
        super().__init__(f"No entry for '{key}' in partition '{partition}'")
        self.partition = partition
        self.key = key


class InstallFailure(SwcacheError):
    """Raised when one or more manifest entries could not be pre-cached."""

    exit_code = EXIT_INSTALL_FAILURE

    def __init__(self, partition: str, failed: Sequence[str]):
        joined = ", ".join(failed)
        super().__init__(f"Install of '{partition}' failed for: {joined}")
        self.partition = partition
        self.failed = list(failed)


class ProtocolError(SwcacheError):
    """Raised for a malformed or unrecognised control message."""

    exit_code = EXIT_INVALID_USAGE


class ConfigError(SwcacheError):
    """Raised for configuration problems (invalid JSON, bad values, unreadable files)."""

    exit_code = EXIT_GENERIC_FAILURE
