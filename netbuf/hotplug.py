"""
Setup and teardown drivers for a vif's network buffer.

setup:    [environment check] -> lock -> claim device -> unlock
          -> redirect vif into device -> plug device -> hotplug-status=connected
teardown: TeardownCoordinator, without the lock

A fatal setup error is reported to the toolstack through
<XENBUS_PATH>/hotplug-error and hotplug-status=error before it propagates.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .allocator import DevicePoolAllocator
from .config import NetbufConfig
from .exceptions import InvalidInvocationError, NetbufException
from .installer import BufferInstaller, QueueInstallResult
from .kernel import KernelNetwork
from .lock import HostLock
from .store import HOTPLUG_ERROR_KEY, HOTPLUG_STATUS_KEY, CoordinationStore, XenStore, join_path
from .teardown import TeardownCoordinator, TeardownReport

logger = logging.getLogger(__name__)

STATUS_CONNECTED = "connected"
STATUS_ERROR = "error"


@dataclass
class SetupResult:
    vif: str
    device: str
    queue: QueueInstallResult


def _require(**inputs: Optional[str]) -> None:
    missing = [name for name, value in inputs.items() if not value]
    if missing:
        raise InvalidInvocationError(
            f"Missing required input: {', '.join(missing)}", {'missing': missing}
        )


class NetbufHotplug:
    """Entry point for the setup and teardown hotplug operations."""

    def __init__(self, config: Optional[NetbufConfig] = None,
                 store: Optional[CoordinationStore] = None,
                 kernel=None, lock: Optional[HostLock] = None) -> None:
        self.config = config or NetbufConfig()
        self.store = store if store is not None else XenStore(timeout=self.config.command.timeout)
        self.kernel = kernel if kernel is not None else KernelNetwork(
            timeout=self.config.command.timeout,
            filter_priority=self.config.queue.filter_priority,
        )
        self.lock = lock if lock is not None else HostLock(
            self.config.lock.lock_name,
            self.config.lock.lock_dir,
            timeout=self.config.lock.timeout,
            poll_interval=self.config.lock.poll_interval,
        )
        self.allocator = DevicePoolAllocator(self.store, self.kernel, self.lock, self.config.pool)
        self.installer = BufferInstaller(self.kernel)
        self.coordinator = TeardownCoordinator(self.store, self.kernel)

    def setup(self, vif: str, xenbus_path: str) -> SetupResult:
        """
        Claim a buffering device for vif and start buffering its traffic.

        Raises:
            InvalidInvocationError: vif or xenbus_path missing (nothing written)
            NetbufException: any other fatal condition, after rollback and
                after hotplug-error/hotplug-status have been written
        """
        _require(vifname=vif, XENBUS_PATH=xenbus_path)

        try:
            if self.config.command.check_environment:
                self.kernel.check_environment()

            device = self.allocator.claim(xenbus_path)
            status_path = join_path(xenbus_path, HOTPLUG_STATUS_KEY)
            queue = self.installer.install(
                vif, device, self.config.queue.capacity_bytes,
                confirm=lambda: self.store.write(status_path, STATUS_CONNECTED),
            )
        except (NetbufException, OSError) as e:
            logger.error(f"Setup of {vif} failed: {e}")
            self._report_error(xenbus_path, e)
            raise

        logger.info(f"Buffering {vif} through {device} ({queue.value})")
        return SetupResult(vif=vif, device=device, queue=queue)

    def teardown(self, vif: str, device: Optional[str], xenbus_path: str) -> TeardownReport:
        """Undo setup for vif. Never raises for kernel or store failures."""
        _require(vifname=vif, XENBUS_PATH=xenbus_path, IFB=device)
        return self.coordinator.teardown(vif, device, xenbus_path)

    def _report_error(self, xenbus_path: str, error: Exception) -> None:
        message = error.message if isinstance(error, NetbufException) else str(error)
        try:
            self.store.write(join_path(xenbus_path, HOTPLUG_ERROR_KEY), message)
            self.store.write(join_path(xenbus_path, HOTPLUG_STATUS_KEY), STATUS_ERROR)
        except (NetbufException, OSError) as e:
            logger.warning(f"Could not record hotplug error under {xenbus_path}: {e}")
