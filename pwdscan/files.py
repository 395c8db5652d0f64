from __future__ import annotations

import os
from typing import Iterable, List

from pwdscan.types import ErrorCategory, ScanError

SKIP_DIRS = frozenset({".git"})


def list_files(root: str, skip_dirs: Iterable[str] = SKIP_DIRS) -> List[str]:
    """Return every regular file under ``root``, sorted, skipping VCS dirs."""
    if not os.path.exists(root):
        raise ScanError(ErrorCategory.CONFIGURATION, f"failed to access root path: {root}")
    if os.path.isfile(root):
        return [root]

    skip = set(skip_dirs)
    files: List[str] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in skip)
        for name in sorted(filenames):
            path = os.path.join(dirpath, name)
            if os.path.isfile(path):
                files.append(path)
    return files


def read_file(path: str) -> str:
    try:
        with open(path, "rb") as fh:
            data = fh.read()
    except OSError as exc:
        raise ScanError(ErrorCategory.INPUT, f"failed to read file {path}: {exc}") from exc
    return data.decode("utf-8", errors="replace")
