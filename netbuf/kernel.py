"""
Kernel network configuration surface.

Wraps the ip(8), tc(8) and libnl nl-qdisc-* tools used to wire a vif into
a buffering (IFB) device:

    vif ingress qdisc (ffff:)
      -> u32 match-all filter, action mirred egress redirect
        -> ifb device, root plug qdisc

Devices are enumerated through psutil rather than by parsing ifconfig.
"""

import logging
import re
import shutil
from typing import List

import psutil

from .commands import run_command
from .exceptions import EnvironmentCheckError

logger = logging.getLogger(__name__)

INGRESS_HANDLE = "ffff:"

REQUIRED_TOOLS = ("ip", "tc", "modinfo", "nl-qdisc-list", "nl-qdisc-add", "nl-qdisc-delete")

# Checked, never loaded. The administrator loads ifb at boot with enough
# devices; the others are autoloaded by tc.
REQUIRED_MODULES = ("ifb", "sch_plug", "sch_ingress", "act_mirred", "cls_u32")


def _natural_key(name: str):
    match = re.match(r"^(.*?)(\d+)$", name)
    if match:
        return (match.group(1), int(match.group(2)))
    return (name, -1)


class KernelNetwork:
    """Issues the link, qdisc and filter commands for one host."""

    def __init__(self, timeout: float = 30.0, filter_priority: int = 10) -> None:
        self.timeout = timeout
        self.filter_priority = filter_priority

    def _run(self, *argv: str) -> str:
        return run_command(argv, timeout=self.timeout).stdout

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def list_devices(self, prefix: str) -> List[str]:
        """Names of the host's network devices starting with prefix, ifb2 before ifb10."""
        names = [name for name in psutil.net_if_stats() if name.startswith(prefix)]
        return sorted(names, key=_natural_key)

    def list_qdiscs(self, device: str) -> List[str]:
        """One line per queuing discipline installed on device."""
        output = self._run("nl-qdisc-list", f"--dev={device}")
        return [line for line in output.splitlines() if line.strip()]

    def check_environment(self) -> None:
        """Raise EnvironmentCheckError unless every tool and module is present."""
        missing_tools = [tool for tool in REQUIRED_TOOLS if shutil.which(tool) is None]
        if missing_tools:
            raise EnvironmentCheckError(
                f"Unable to find {', '.join(missing_tools)}", {'tools': missing_tools}
            )

        missing_modules = []
        for module in REQUIRED_MODULES:
            result = run_command(["modinfo", module], timeout=self.timeout, check=False)
            if result.returncode != 0:
                missing_modules.append(module)
        if missing_modules:
            raise EnvironmentCheckError(
                f"Unable to find kernel module {', '.join(missing_modules)}",
                {'modules': missing_modules},
            )

    # ------------------------------------------------------------------
    # Links
    # ------------------------------------------------------------------

    def link_up(self, device: str) -> None:
        self._run("ip", "link", "set", "dev", device, "up")

    def link_down(self, device: str) -> None:
        self._run("ip", "link", "set", "dev", device, "down")

    # ------------------------------------------------------------------
    # Interception on the vif
    # ------------------------------------------------------------------

    def add_ingress(self, vif: str) -> None:
        self._run("tc", "qdisc", "add", "dev", vif, "ingress")

    def del_ingress(self, vif: str) -> None:
        """Remove the ingress qdisc; its filters go with it."""
        self._run("tc", "qdisc", "del", "dev", vif, "ingress")

    def add_redirect_filter(self, vif: str, device: str) -> None:
        self._run(
            "tc", "filter", "add", "dev", vif, "parent", INGRESS_HANDLE,
            "protocol", "all", "prio", str(self.filter_priority),
            "u32", "match", "u32", "0", "0",
            "action", "mirred", "egress", "redirect", "dev", device,
        )

    def del_redirect_filter(self, vif: str) -> None:
        self._run(
            "tc", "filter", "del", "dev", vif, "parent", INGRESS_HANDLE,
            "protocol", "all", "prio", str(self.filter_priority),
        )

    # ------------------------------------------------------------------
    # Plug qdisc on the buffering device
    # ------------------------------------------------------------------

    def add_plug_qdisc(self, device: str) -> None:
        self._run("nl-qdisc-add", f"--dev={device}", "--parent=root", "plug")

    def set_plug_limit(self, device: str, limit_bytes: int) -> None:
        self._run(
            "nl-qdisc-add", f"--dev={device}", "--parent=root",
            "--update", "plug", f"--limit={limit_bytes}",
        )

    def del_plug_qdisc(self, device: str) -> None:
        self._run("nl-qdisc-delete", f"--dev={device}", "--parent=root", "plug")
