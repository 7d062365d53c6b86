"""
Coordination store access.

The store is a hierarchical key/value tree shared by every hotplug
invocation on the host (xenstore). There are no transactions; existence is
a separate primitive from read.
"""

from __future__ import annotations

import logging
import posixpath
import threading
from typing import List, Optional, Protocol

from .commands import run_command
from .exceptions import CommandError, StoreError

logger = logging.getLogger(__name__)

CLAIM_KEY = "ifb"
HOTPLUG_STATUS_KEY = "hotplug-status"
HOTPLUG_ERROR_KEY = "hotplug-error"


def join_path(*parts: str) -> str:
    """Join store path components, collapsing duplicate separators."""
    return posixpath.join(*parts).replace("//", "/")


class CoordinationStore(Protocol):
    def read(self, path: str) -> Optional[str]:
        ...

    def write(self, path: str, value: str) -> None:
        ...

    def remove(self, path: str) -> None:
        ...

    def list(self, path: str) -> List[str]:
        ...

    def exists(self, path: str) -> bool:
        ...


class XenStore:
    """CoordinationStore backed by the xenstore command-line tools."""

    def __init__(self, timeout: float = 30.0) -> None:
        self.timeout = timeout

    def read(self, path: str) -> Optional[str]:
        """Return the value at path, or None when the key does not exist."""
        if not self.exists(path):
            return None
        try:
            result = run_command(["xenstore-read", path], timeout=self.timeout)
        except CommandError as e:
            # Removed between the existence check and the read
            if not self.exists(path):
                return None
            raise StoreError(f"read {path} failed", {'stderr': e.stderr.strip()}) from e
        return result.stdout.rstrip("\n")

    def write(self, path: str, value: str) -> None:
        try:
            run_command(["xenstore-write", path, value], timeout=self.timeout)
        except CommandError as e:
            raise StoreError(f"write {path} failed", {'stderr': e.stderr.strip()}) from e

    def remove(self, path: str) -> None:
        """Remove path and its subtree. Missing keys are not an error."""
        result = run_command(["xenstore-rm", "-t", path], timeout=self.timeout, check=False)
        if result.returncode != 0 and self.exists(path):
            raise StoreError(f"remove {path} failed", {'stderr': result.stderr.strip()})

    def list(self, path: str) -> List[str]:
        """List child names of path; a missing directory lists as empty."""
        result = run_command(["xenstore-list", path], timeout=self.timeout, check=False)
        if result.returncode != 0:
            logger.debug(f"xenstore-list {path} failed: {result.stderr.strip()}")
            return []
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def exists(self, path: str) -> bool:
        result = run_command(["xenstore-exists", path], timeout=self.timeout, check=False)
        return result.returncode == 0


class MemoryStore:
    """Dictionary-backed CoordinationStore living in the current process."""

    def __init__(self) -> None:
        self.data: dict = {}
        self._mutex = threading.Lock()

    def read(self, path: str) -> Optional[str]:
        with self._mutex:
            return self.data.get(path.rstrip("/"))

    def write(self, path: str, value: str) -> None:
        with self._mutex:
            self.data[path.rstrip("/")] = value

    def remove(self, path: str) -> None:
        path = path.rstrip("/")
        with self._mutex:
            for key in [k for k in self.data if k == path or k.startswith(path + "/")]:
                del self.data[key]

    def list(self, path: str) -> List[str]:
        prefix = path.rstrip("/") + "/"
        children: List[str] = []
        with self._mutex:
            for key in self.data:
                if key.startswith(prefix):
                    child = key[len(prefix):].split("/", 1)[0]
                    if child not in children:
                        children.append(child)
        return children

    def exists(self, path: str) -> bool:
        path = path.rstrip("/")
        with self._mutex:
            return any(k == path or k.startswith(path + "/") for k in self.data)
