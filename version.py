"""Project version constants.

Reported by the ``/api/version`` endpoint and the CLI so that a running
server can be traced back to a specific release.
"""

ENGINE_NAME: str = "sead-site-aggregator"
ENGINE_VERSION: str = "0.1.0"
