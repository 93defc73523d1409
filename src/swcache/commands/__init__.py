"""Built-in CLI sub-commands for swcache.

* :mod:`~swcache.commands.cache` -- engine operations (``install``,
  ``activate``, ``fetch``, ``control``, ``partitions``, ``sweep``),
  registered directly on the root app.
* :mod:`~swcache.commands.config` -- the ``config`` sub-application for
  viewing and modifying global settings.
"""
