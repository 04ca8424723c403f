"""Error taxonomy shared by the push stores, queue and API layer."""

import re


class PushServiceError(Exception):
    """Base class for push service failures."""

    default_message = "Push service error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def code(self) -> str:
        """snake_case error code derived from the class name."""
        return re.sub(r"(?<!^)(?=[A-Z])", "_", type(self).__name__).lower()


class StorageWriteError(PushServiceError):
    """An insert, update or delete failed at the storage layer."""

    default_message = "Storage write failed"


class MigrationError(PushServiceError):
    """The guest to user transfer failed and was rolled back.

    The guest's rows are unchanged, so the migration can be retried later.
    """

    default_message = "Guest migration failed"


class DispatchError(PushServiceError):
    """The external sender failed to deliver a notification."""

    default_message = "Notification dispatch failed"


class ValidationError(PushServiceError):
    """Bad input, carrying an HTTP-like status hint for API layers."""

    def __init__(self, code: str, message: str, status: int = 400) -> None:
        super().__init__(message)
        self._code = code
        self.message = message
        self.status = status

    @property
    def code(self) -> str:
        return self._code
