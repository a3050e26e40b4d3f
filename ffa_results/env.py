from __future__ import annotations

import os

PREFIX = "FFA_RESULTS_"


def get_env(name: str, default: str | None = None) -> str | None:
    """
    Resolve configuration environment variables.

    Every setting is read from `FFA_RESULTS_<NAME>` so deployments can point the
    CLI at a results file or config without touching the command line.
    """
    value = os.getenv(f"{PREFIX}{name}")
    if value is not None:
        return value
    return default
