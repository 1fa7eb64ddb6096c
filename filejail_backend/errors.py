from __future__ import annotations


class FileJailError(Exception):
    """Base for every failure that is reported back to the client."""

    status_code = 500
    default_message = "Internal error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ClientInputError(FileJailError):
    status_code = 400
    default_message = "Bad request"


class PathViolation(FileJailError):
    """Raised when a requested path escapes the configured root.

    The message is fixed so the resolved path is never echoed to the client.
    """

    status_code = 400
    default_message = "Invalid path"


class NotFound(FileJailError):
    status_code = 404
    default_message = "Not found"


class StateConflict(FileJailError):
    status_code = 400
    default_message = "Conflicting state"


class InternalIOError(FileJailError):
    status_code = 500
    default_message = "Internal I/O error"
