"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~swcache.exceptions.SwcacheError` subclass.

Example::

    $ swcache install
    $ echo $?
    7   # EXIT_INSTALL_FAILURE -- a manifest entry could not be fetched
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""Invalid arguments, or a malformed control message."""

EXIT_NOT_FOUND = 4
"""A cache lookup found no entry."""

EXIT_NETWORK_FAILURE = 6
"""A fetch was rejected, timed out, or returned a non-ok status."""

EXIT_INSTALL_FAILURE = 7
"""Pre-caching the manifest failed; the new partition was not promoted."""
