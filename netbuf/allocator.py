"""
Buffering device pool allocation.

A device is free when the kernel reports no qdisc on it and no claim
record anywhere in the store names it. Selection and the claim record write
happen under the host lock so the next contender's scan sees the claim.
"""

from __future__ import annotations

import logging
from typing import Iterator, Optional, Set, Tuple

from .config import PoolConfig
from .exceptions import ClaimError, CommandError, DeviceExhaustedError, StoreError
from .lock import HostLock
from .store import CLAIM_KEY, CoordinationStore, join_path

logger = logging.getLogger(__name__)


class DevicePoolAllocator:
    """Claims one unused buffering device for a vif's store path."""

    def __init__(self, store: CoordinationStore, kernel, lock: HostLock,
                 pool: Optional[PoolConfig] = None) -> None:
        self.store = store
        self.kernel = kernel
        self.lock = lock
        self.pool = pool or PoolConfig()

    def iter_claims(self) -> Iterator[Tuple[str, str]]:
        """Yield (record path, device name) for every claim record in the store."""
        for domid in self.store.list(self.pool.domain_root):
            if not domid.isdigit() or int(domid) == 0:
                continue
            netbuf_root = self.pool.netbuf_root_template.format(domid=domid)
            if not self.store.exists(netbuf_root):
                continue
            for devid in self.store.list(netbuf_root):
                path = join_path(netbuf_root, devid, CLAIM_KEY)
                device = self.store.read(path)
                if device:
                    yield path, device

    def _has_qdisc(self, device: str) -> bool:
        try:
            return bool(self.kernel.list_qdiscs(device))
        except CommandError as e:
            logger.warning(f"Skipping {device}: cannot list its qdiscs ({e})")
            return True

    def select_free_device(self) -> Optional[str]:
        """
        Return the first free device of the pool, or None when exhausted.

        Must be called with the lock held.
        """
        claimed: Optional[Set[str]] = None
        for device in self.kernel.list_devices(self.pool.device_prefix):
            if self._has_qdisc(device):
                logger.debug(f"{device} has a qdisc installed, in use")
                continue
            if claimed is None:
                claimed = {name for _, name in self.iter_claims()}
            if device in claimed:
                logger.debug(f"{device} is named by a claim record, in use")
                continue
            return device
        return None

    def claim(self, xenbus_path: str) -> str:
        """
        Select a free device, record the claim at <xenbus_path>/ifb and bring
        the device up, all under the lock.

        Raises:
            LockTimeoutError: lock not acquired in time (nothing created)
            DeviceExhaustedError: no free device (nothing created)
            ClaimError: record write or link up failed; a written record is
                left for teardown to remove
        """
        record_path = join_path(xenbus_path, CLAIM_KEY)
        with self.lock:
            device = self.select_free_device()
            if device is None:
                raise DeviceExhaustedError(
                    "Unable to find a spare buffering device",
                    {'prefix': self.pool.device_prefix, 'path': xenbus_path},
                )

            try:
                self.store.write(record_path, device)
            except StoreError as e:
                raise ClaimError(f"Failed to record claim of {device}", {'path': record_path}) from e

            try:
                self.kernel.link_up(device)
            except CommandError as e:
                raise ClaimError(f"Failed to bring {device} up", {'path': record_path}) from e

        logger.info(f"Claimed {device} for {xenbus_path}")
        return device
