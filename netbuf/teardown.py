"""
Teardown of a vif's network buffer.

Every step is attempted independently and its failure is only logged, so
teardown can be repeated any number of times and after a partial setup.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from .exceptions import Result, try_call
from .store import CLAIM_KEY, HOTPLUG_ERROR_KEY, HOTPLUG_STATUS_KEY, CoordinationStore, join_path

logger = logging.getLogger(__name__)


@dataclass
class TeardownStep:
    """Outcome of one cleanup action."""
    name: str
    target: str
    result: Result

    @property
    def ok(self) -> bool:
        return self.result.is_ok


@dataclass
class TeardownReport:
    vif: str
    device: Optional[str]
    xenbus_path: str
    # True when the claim record named the device being torn down
    released_device: bool = False
    steps: List[TeardownStep] = field(default_factory=list)

    @property
    def failures(self) -> List[TeardownStep]:
        return [step for step in self.steps if not step.ok]

    @property
    def clean(self) -> bool:
        return not self.failures


class TeardownCoordinator:
    """Reverses a vif's buffering setup for a (vif, device) pair."""

    def __init__(self, store: CoordinationStore, kernel) -> None:
        self.store = store
        self.kernel = kernel

    def _attempt(self, report: TeardownReport, name: str,
                 fn: Callable[..., object], *args) -> Result:
        result = try_call(fn, *args)
        target = str(args[0]) if args else ""
        if result.is_err:
            logger.warning(f"Teardown step {name} on {target} failed: {result.error}")
        else:
            logger.debug(f"Teardown step {name} on {target} done")
        report.steps.append(TeardownStep(name, target, result))
        return result

    def teardown(self, vif: str, device: Optional[str], xenbus_path: str) -> TeardownReport:
        """
        Release device from vif and remove vif's interception.

        The device is brought down, unplugged and its claim record deleted
        only if the record at <xenbus_path>/ifb names exactly this device;
        a stale caller must not free a device now owned by someone else.
        The ingress qdisc on vif is removed regardless.
        """
        report = TeardownReport(vif=vif, device=device, xenbus_path=xenbus_path)
        record_path = join_path(xenbus_path, CLAIM_KEY)

        if device:
            claim = self._attempt(report, "read_claim", self.store.read, record_path)
            owner = claim.unwrap_or(None)
            if owner == device:
                report.released_device = True
                self._attempt(report, "link_down", self.kernel.link_down, device)
                self._attempt(report, "del_plug_qdisc", self.kernel.del_plug_qdisc, device)
                self._attempt(report, "remove_claim", self.store.remove, record_path)
            elif owner is not None:
                logger.warning(
                    f"Claim record {record_path} names {owner}, not {device}; leaving it in place"
                )

        self._attempt(report, "del_ingress", self.kernel.del_ingress, vif)
        self._attempt(report, "remove_hotplug_status", self.store.remove,
                      join_path(xenbus_path, HOTPLUG_STATUS_KEY))
        self._attempt(report, "remove_hotplug_error", self.store.remove,
                      join_path(xenbus_path, HOTPLUG_ERROR_KEY))

        logger.info(
            f"Teardown of {vif} (device {device or 'none'}) finished with "
            f"{len(report.failures)} failed step(s)"
        )
        return report
