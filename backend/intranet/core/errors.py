"""Error types shared by the services and translated to HTTP by the routers."""

from __future__ import annotations


class IntranetError(Exception):
    """Base class for domain errors raised by the services."""


class NotAuthenticated(IntranetError):
    """No valid principal accompanied the request."""


class NoTenantAvailable(IntranetError):
    """Auto-provisioning found no hospital to attach a new employee to."""


class CapabilityAbsent(IntranetError):
    """The persistence layer is missing a relation or rejects access by policy.

    Recovered locally by switching to the in-memory chat store; never
    surfaced to HTTP callers.
    """

    def __init__(self, cause: BaseException | None = None):
        super().__init__(str(cause) if cause is not None else "capability absent")
        self.cause = cause


class ValidationFailed(IntranetError, ValueError):
    """Input rejected before touching the persistence layer."""


class PermissionDenied(IntranetError):
    """The acting employee lacks the room role required for the operation."""


class RoomNotFound(IntranetError):
    pass


class MessageNotFound(IntranetError):
    pass


class RowParseError(IntranetError):
    """A stored row did not match the expected record shape."""


class _CausedError(IntranetError):
    def __init__(self, cause: BaseException):
        super().__init__(str(cause))
        self.cause = cause


class RoomCreationFailed(_CausedError):
    pass


class MessageSendFailed(_CausedError):
    pass


class ReadStateUpdateFailed(_CausedError):
    """Logged by the read-state tracker; never raised to callers."""
