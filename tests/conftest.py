"""
Pytest configuration and shared fixtures.

Provides:
- FakeKernel: records link/qdisc/filter state, with injectable failures
- In-memory coordination store
- Host lock in a temporary directory
- Test environment setup
"""

import logging
import sys
import threading
import time
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from netbuf.config import NetbufConfig, set_config
from netbuf.exceptions import CommandError
from netbuf.hotplug import NetbufHotplug
from netbuf.lock import HostLock
from netbuf.store import MemoryStore


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "concurrency: marks tests that run several hotplug operations in threads"
    )


class FakeKernel:
    """In-memory stand-in for KernelNetwork.

    Mirrors the kernel's refusal to add what exists or delete what is
    absent, so idempotence is tested against realistic errors.
    """

    def __init__(self, devices=("ifb0", "ifb1"), scan_delay=0.0):
        self.devices = {name: False for name in devices}  # name -> up
        self.plugged = {}          # device -> limit (None until tuned)
        self.ingress = set()       # vifs with an ingress qdisc
        self.filters = {}          # vif -> redirect target
        self.calls = []
        self.failures = {}         # operation -> remaining count (None = always)
        self.scan_delay = scan_delay
        self._mutex = threading.RLock()

    def fail(self, operation, times=None):
        self.failures[operation] = times

    def _enter(self, operation, *args):
        self.calls.append((operation,) + args)
        if operation in self.failures:
            remaining = self.failures[operation]
            if remaining is None or remaining > 0:
                if remaining is not None:
                    self.failures[operation] = remaining - 1
                raise CommandError([operation, *map(str, args)], 1, "injected failure")

    def _refuse(self, operation, *args):
        raise CommandError([operation, *map(str, args)], 2, "RTNETLINK answers: invalid argument")

    def list_devices(self, prefix):
        with self._mutex:
            self._enter("list_devices", prefix)
            return sorted(name for name in self.devices if name.startswith(prefix))

    def list_qdiscs(self, device):
        with self._mutex:
            self._enter("list_qdiscs", device)
            qdiscs = ["qdisc plug root"] if device in self.plugged else []
        if self.scan_delay:
            time.sleep(self.scan_delay)
        return qdiscs

    def check_environment(self):
        with self._mutex:
            self._enter("check_environment")

    def link_up(self, device):
        with self._mutex:
            self._enter("link_up", device)
            if device not in self.devices:
                self._refuse("link_up", device)
            self.devices[device] = True

    def link_down(self, device):
        with self._mutex:
            self._enter("link_down", device)
            if device not in self.devices:
                self._refuse("link_down", device)
            self.devices[device] = False

    def add_ingress(self, vif):
        with self._mutex:
            self._enter("add_ingress", vif)
            if vif in self.ingress:
                self._refuse("add_ingress", vif)
            self.ingress.add(vif)

    def del_ingress(self, vif):
        with self._mutex:
            self._enter("del_ingress", vif)
            if vif not in self.ingress:
                self._refuse("del_ingress", vif)
            self.ingress.discard(vif)
            self.filters.pop(vif, None)

    def add_redirect_filter(self, vif, device):
        with self._mutex:
            self._enter("add_redirect_filter", vif, device)
            if vif not in self.ingress or vif in self.filters:
                self._refuse("add_redirect_filter", vif, device)
            self.filters[vif] = device

    def del_redirect_filter(self, vif):
        with self._mutex:
            self._enter("del_redirect_filter", vif)
            if vif not in self.filters:
                self._refuse("del_redirect_filter", vif)
            del self.filters[vif]

    def add_plug_qdisc(self, device):
        with self._mutex:
            self._enter("add_plug_qdisc", device)
            if device in self.plugged:
                self._refuse("add_plug_qdisc", device)
            self.plugged[device] = None

    def set_plug_limit(self, device, limit_bytes):
        with self._mutex:
            self._enter("set_plug_limit", device, limit_bytes)
            if device not in self.plugged:
                self._refuse("set_plug_limit", device, limit_bytes)
            self.plugged[device] = limit_bytes

    def del_plug_qdisc(self, device):
        with self._mutex:
            self._enter("del_plug_qdisc", device)
            if device not in self.plugged:
                self._refuse("del_plug_qdisc", device)
            del self.plugged[device]

    def snapshot(self):
        with self._mutex:
            return (dict(self.devices), dict(self.plugged), set(self.ingress), dict(self.filters))


@pytest.fixture(autouse=True)
def reset_netbuf_state(monkeypatch):
    """Isolate tests from the global config and NETBUF_* variables."""
    import os
    for name in list(os.environ):
        if name.startswith("NETBUF_") or name in ("vifname", "XENBUS_PATH", "IFB"):
            monkeypatch.delenv(name, raising=False)
    set_config(None)
    yield
    set_config(None)


@pytest.fixture
def kernel():
    return FakeKernel()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def lock_dir(tmp_path):
    return str(tmp_path / "locks")


@pytest.fixture
def host_lock(lock_dir):
    return HostLock("pickifb", lock_dir, timeout=5.0, poll_interval=0.01)


@pytest.fixture
def config(lock_dir):
    cfg = NetbufConfig()
    cfg.lock.lock_dir = lock_dir
    cfg.lock.timeout = 5.0
    cfg.lock.poll_interval = 0.01
    return cfg


@pytest.fixture
def hotplug(config, store, kernel, host_lock):
    return NetbufHotplug(config, store=store, kernel=kernel, lock=host_lock)


def claim_path(domid, devid=0):
    return f"/libxl/{domid}/remus/netbuf/{devid}"


def register_domain(store, domid):
    """Make domid visible under /local/domain the way xenstore lists it."""
    store.write(f"/local/domain/{domid}/name", f"guest{domid}")
