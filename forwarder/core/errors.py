"""Exception hierarchy for the forwarder."""

from typing import Optional


class ForwarderError(Exception):
    """Base class for every error raised by the forwarder."""


class ConfigError(ForwarderError, ValueError):
    """Invalid adapter configuration (bad URL scheme, missing option, ...)."""


class EncodingError(ForwarderError):
    """Serialized buffer did not match its predicted size."""


class NotConnectedError(ForwarderError):
    """Write attempted on an adapter that is not connected."""


class BackendTransportError(ForwarderError):
    """The backend could not be reached (network failure, timeout)."""


class BackendError(ForwarderError):
    """The backend answered with an error response.

    Args:
        code: ErrorCode extracted from the response message
        message: Raw error message reported by the backend
        status_code: HTTP status of the response
        reqid: Backend request id, if the response carried one
    """

    def __init__(self, code, message: str, status_code: int = 0, reqid: Optional[str] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.reqid = reqid

    def __str__(self) -> str:
        if self.reqid:
            return f"{self.message} (status={self.status_code}, reqid={self.reqid})"
        return f"{self.message} (status={self.status_code})"


class ReconciliationError(ForwarderError):
    """Creating or updating a backend repo, series or export failed."""
