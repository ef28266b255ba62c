"""Error taxonomy for Metascope.

Every failure that crosses the client boundary is one of these types.
Raw ``httpx`` and subprocess errors never leave the client package; the
cache stores the translated error in a failed entry and the TUI renders
it inline.

Hierarchy::

    MetascopeError
    +-- AuthFailure
    +-- NetworkTransient
    +-- ServiceRejected
    |   +-- NotFound
    +-- MalformedData
    +-- UserInputInvalid
"""

from typing import Optional


class MetascopeError(Exception):
    """Base class for all user-visible Metascope errors."""

    kind = "error"

    def __init__(self, message: str, *, hint: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint

    @property
    def retryable(self) -> bool:
        """Whether re-issuing the same request can succeed."""
        return True

    def describe(self) -> str:
        """Single line suitable for a status bar."""
        return f"{self.kind}: {self.message}"


class AuthFailure(MetascopeError):
    """Credential missing, expired, or rejected by the service."""

    kind = "auth"


class NetworkTransient(MetascopeError):
    """Connection problem, timeout, or a 5xx from the service."""

    kind = "network"


class ServiceRejected(MetascopeError):
    """The service answered with a non-success status."""

    kind = "service"

    def __init__(
        self,
        status: int,
        message: str,
        *,
        hint: Optional[str] = None,
    ) -> None:
        super().__init__(f"HTTP {status}: {message}", hint=hint)
        self.status = status
        self.detail = message


class NotFound(ServiceRejected):
    """The requested record or metadata does not exist."""

    kind = "not found"

    def __init__(self, message: str = "Not found", *, hint: Optional[str] = None) -> None:
        super().__init__(404, message, hint=hint)

    @property
    def retryable(self) -> bool:
        return False


class MalformedData(MetascopeError):
    """A response or derived input did not have the expected shape."""

    kind = "malformed"


class UserInputInvalid(MetascopeError):
    """Input typed by the user (e.g. FetchXML) is not valid."""

    kind = "input"

    @property
    def retryable(self) -> bool:
        return False
