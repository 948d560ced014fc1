"""Error taxonomy shared by the backends and the HTTP layer."""


class BackendError(Exception):
    """Base class for every failure raised by a backend."""


class ConfigError(BackendError):
    """Missing or unreadable pueue configuration."""


class TransportError(BackendError):
    """Connecting to or handshaking with the daemon failed."""


class ProtocolError(BackendError):
    """The daemon answered with a failure or an unexpected message."""


class ValidationError(BackendError):
    """Caller input violates a precondition; never retried."""


class UnsupportedAction(BackendError):
    """Unknown task or group action name."""


class TaskNotFound(BackendError):
    """The task id is not part of the daemon state."""


class FallbackError(BackendError):
    """The ``pueue`` command-line fallback failed as well."""


class CacheLockError(BackendError):
    """The status cache lock could not be acquired."""
