"""Network buffering hotplug support for Remus-protected Xen guests.

Claims a buffering (IFB) device for a guest vif, redirects the vif's
outbound traffic into it through a plug qdisc, and releases everything
again on teardown. See netbuf.hotplug for the two operations.
"""

from .config import NetbufConfig, get_config, set_config
from .exceptions import (
    ClaimError,
    CommandError,
    ConfigurationError,
    DeviceExhaustedError,
    EnvironmentCheckError,
    InvalidInvocationError,
    LockTimeoutError,
    NetbufException,
    QueueInstallError,
    RedirectionError,
    SetupError,
    StoreError,
)
from .hotplug import NetbufHotplug, SetupResult
from .store import CoordinationStore, MemoryStore, XenStore
from .teardown import TeardownReport

__version__ = "0.1.0"

__all__ = [
    "NetbufConfig",
    "get_config",
    "set_config",
    "NetbufHotplug",
    "SetupResult",
    "TeardownReport",
    "CoordinationStore",
    "MemoryStore",
    "XenStore",
    "NetbufException",
    "InvalidInvocationError",
    "EnvironmentCheckError",
    "ConfigurationError",
    "LockTimeoutError",
    "DeviceExhaustedError",
    "CommandError",
    "StoreError",
    "SetupError",
    "ClaimError",
    "RedirectionError",
    "QueueInstallError",
]
