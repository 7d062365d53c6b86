"""
Redirection and queue installation for a claimed buffering device.

Each install step registers its undo action on an ExitStack. If a later
step fails the stack unwinds in reverse order before the error propagates;
on success the undo actions are discarded with pop_all(). The claim on the
device is never undone here, only teardown releases it.
"""

from __future__ import annotations

import logging
from contextlib import ExitStack
from enum import Enum
from typing import Callable, Optional

from .exceptions import CommandError, QueueInstallError, RedirectionError

logger = logging.getLogger(__name__)


class QueueInstallResult(Enum):
    INSTALLED = "installed"
    # Plug qdisc is in place but the byte limit update was rejected
    DEFAULT_CAPACITY = "default_capacity"


class BufferInstaller:
    """Wires a vif's traffic into its buffering device."""

    def __init__(self, kernel) -> None:
        self.kernel = kernel

    @staticmethod
    def _undo(what: str, fn: Callable[[str], None], target: str) -> None:
        try:
            fn(target)
            logger.info(f"Rolled back {what} on {target}")
        except CommandError as e:
            logger.warning(f"Rollback of {what} on {target} failed: {e}")

    def install_redirection(self, vif: str, device: str) -> ExitStack:
        """
        Attach an ingress qdisc to vif and redirect all its traffic to device.

        Returns:
            ExitStack holding the undo actions (filter, then ingress qdisc).

        Raises:
            RedirectionError: a step failed; the ingress qdisc added by this
                call has been removed again
        """
        with ExitStack() as stack:
            try:
                self.kernel.add_ingress(vif)
            except CommandError as e:
                raise RedirectionError(f"Failed to add ingress qdisc to {vif}", {'vif': vif}) from e
            stack.callback(self._undo, "ingress qdisc", self.kernel.del_ingress, vif)

            try:
                self.kernel.add_redirect_filter(vif, device)
            except CommandError as e:
                raise RedirectionError(
                    f"Failed to redirect traffic from {vif} to {device}",
                    {'vif': vif, 'device': device},
                ) from e
            stack.callback(self._undo, "redirect filter", self.kernel.del_redirect_filter, vif)

            logger.debug(f"Redirected {vif} ingress to {device}")
            return stack.pop_all()

    def install_queue(self, device: str, capacity_bytes: int) -> QueueInstallResult:
        """
        Install the plug qdisc on device, then request its byte limit.

        The limit is best-effort: the qdisc works with its default limit.

        Raises:
            QueueInstallError: the plug qdisc itself could not be added
        """
        try:
            self.kernel.add_plug_qdisc(device)
        except CommandError as e:
            raise QueueInstallError(f"Failed to add plug qdisc to {device}", {'device': device}) from e

        try:
            self.kernel.set_plug_limit(device, capacity_bytes)
        except CommandError as e:
            logger.warning(f"Could not set {device} buffer limit to {capacity_bytes} bytes: {e}")
            return QueueInstallResult.DEFAULT_CAPACITY
        return QueueInstallResult.INSTALLED

    def install(self, vif: str, device: str, capacity_bytes: int,
                confirm: Optional[Callable[[], None]] = None) -> QueueInstallResult:
        """
        Redirect vif into device and plug it; roll back the vif side on failure.

        confirm runs once everything is in place. If it raises, the vif side is
        rolled back as well and the error propagates.
        """
        with self.install_redirection(vif, device) as rollback:
            result = self.install_queue(device, capacity_bytes)
            if confirm is not None:
                confirm()
            rollback.pop_all()
        return result
