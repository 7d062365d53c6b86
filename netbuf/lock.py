"""
Host-wide advisory lock.

Serializes the free-device selection across concurrent hotplug
invocations. Backed by filelock on a file under the lock directory; the
kernel drops the lock when the holding process exits. Ownership is per
thread, so one HostLock shared by several threads still excludes them from
each other.
"""

import logging
import os

from filelock import FileLock, Timeout

from .exceptions import LockTimeoutError

logger = logging.getLogger(__name__)


class HostLock:
    """
    Named exclusive lock shared by all processes on the host.

    Usage:
        with HostLock("pickifb", "/var/run/xen-hotplug", timeout=60.0):
            ...critical section...
    """

    def __init__(self, name: str, lock_dir: str, timeout: float = 60.0,
                 poll_interval: float = 0.1) -> None:
        self.name = name
        self.path = os.path.join(lock_dir, f"{name}.lock")
        self.timeout = timeout
        self.poll_interval = poll_interval
        self._lock = FileLock(self.path, timeout=timeout)

    @property
    def held(self) -> bool:
        """Whether the calling thread holds the lock."""
        return self._lock.is_locked

    def acquire(self) -> None:
        """Block until the lock is held, or raise LockTimeoutError."""
        os.makedirs(os.path.dirname(self.path), exist_ok=True)
        try:
            self._lock.acquire(timeout=self.timeout, poll_interval=self.poll_interval)
        except Timeout as e:
            raise LockTimeoutError(
                f"timed out waiting for lock {self.name}",
                {'path': self.path, 'timeout': self.timeout},
            ) from e
        logger.debug(f"Acquired lock {self.name} ({self.path})")

    def release(self) -> None:
        """Release the lock. Releasing a lock that is not held is a no-op."""
        if not self.held:
            return
        self._lock.release(force=True)
        logger.debug(f"Released lock {self.name}")

    def __enter__(self) -> "HostLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
