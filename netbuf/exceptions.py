"""
Netbuf exception hierarchy.

All netbuf exceptions inherit from NetbufException for easy catching.
"""
from dataclasses import dataclass
from typing import Callable, Generic, Optional, Sequence, TypeVar


class NetbufException(Exception):
    """Base exception for all netbuf errors."""

    def __init__(self, message: str, context: dict = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self):
        base = f"{self.__class__.__name__}: {self.message}"
        if self.context:
            ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{base} (context: {ctx_str})"
        return base


# Invocation exceptions
class InvalidInvocationError(NetbufException):
    """Unknown command or missing required input."""
    pass


class EnvironmentCheckError(NetbufException):
    """Required tool or kernel module is not available on the host."""
    pass


class ConfigurationError(NetbufException):
    """Invalid configuration."""
    pass


# Coordination exceptions
class LockTimeoutError(NetbufException):
    """Host lock could not be acquired in time."""
    pass


class DeviceExhaustedError(NetbufException):
    """No free buffering device is left in the pool."""
    pass


# External command exceptions
class CommandError(NetbufException):
    """An external command exited non-zero or could not be run."""

    def __init__(self, argv: Sequence[str], returncode: Optional[int] = None,
                 stderr: str = "", context: dict = None):
        ctx = {'returncode': returncode}
        if stderr:
            ctx['stderr'] = stderr.strip()
        ctx.update(context or {})
        super().__init__(f"command failed: {' '.join(argv)}", ctx)
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr


class StoreError(NetbufException):
    """Coordination store operation failed."""
    pass


# Setup exceptions
class SetupError(NetbufException):
    """Base for failures after a device has been claimed."""
    pass


class ClaimError(SetupError):
    """Claim record could not be written or the device brought up."""
    pass


class RedirectionError(SetupError):
    """Ingress interception or redirect filter could not be installed."""
    pass


class QueueInstallError(SetupError):
    """Plug qdisc could not be installed on the buffering device."""
    pass


# ============================================================================
# Result Type for Operations That May Fail
# ============================================================================

T = TypeVar('T')


@dataclass
class Result(Generic[T]):
    """
    Result type for operations that may fail.

    Usage:
        result = try_call(kernel.link_down, 'ifb0')
        if result.is_err:
            logger.warning(f"ignored: {result.error}")
    """

    _value: Optional[T] = None
    _error: Optional[Exception] = None

    @staticmethod
    def ok(value: T = None) -> 'Result[T]':
        """Create successful result."""
        return Result(_value=value, _error=None)

    @staticmethod
    def err(error: Exception) -> 'Result[T]':
        """Create error result."""
        return Result(_value=None, _error=error)

    @property
    def is_ok(self) -> bool:
        """Check if result is successful."""
        return self._error is None

    @property
    def is_err(self) -> bool:
        """Check if result is error."""
        return self._error is not None

    @property
    def error(self) -> Optional[Exception]:
        """Get error if present."""
        return self._error

    def unwrap(self) -> T:
        """Get value, raising the stored exception if error."""
        if self.is_err:
            raise self._error
        return self._value

    def unwrap_or(self, default: T) -> T:
        """Get value or return default if error."""
        if self.is_err:
            return default
        return self._value


def try_call(f: Callable[..., T], *args, **kwargs) -> Result[T]:
    """
    Call f and wrap the outcome in a Result.

    Only NetbufException and OSError are captured; programming errors
    propagate.
    """
    try:
        return Result.ok(f(*args, **kwargs))
    except (NetbufException, OSError) as e:
        return Result.err(e)
