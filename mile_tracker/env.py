from __future__ import annotations

import os

PREFIX = "MILE_TRACKER_"


def get_env(name: str, default: str | None = None) -> str | None:
    """
    Resolve configuration environment variables.

    Every setting lives under the ``MILE_TRACKER_`` prefix, e.g. ``MILE_TRACKER_DB_FILE``.
    """
    value = os.getenv(f"{PREFIX}{name}")
    if value is not None:
        return value
    return default

