from __future__ import annotations

import json
import os
from typing import Any

__all__ = [
    "_stable_serialize",
    "_polling_requested",
    "_match_path",
]


def _stable_serialize(data: Any) -> bytes:
    return json.dumps(
        data, separators=(",", ":"), sort_keys=True, ensure_ascii=False, allow_nan=False
    ).encode("utf-8")


def _polling_requested() -> bool:
    return os.getenv("CONFIG_WATCHER_POLLING", "") == "1"


def _match_path(path: str) -> str:
    """
    Normalise a path for event matching: resolve symlinks in the directory
    part only, so a symlinked target file is still matched by name.
    """
    directory, name = os.path.split(os.path.abspath(path))
    return os.path.join(os.path.realpath(directory), name)
