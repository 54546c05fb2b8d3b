"""Shared exceptions for authentication, authority calls and user updates."""


class LocationServiceError(Exception):
    """Base class for errors surfaced to API callers."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class MalformedCredentialHeaderError(LocationServiceError):
    """
    Raised when the Authorization header is missing or not a bearer credential.

    Detected before any call to the identity authority.
    """

    def __init__(self, message: str = "Invalid authorization header format") -> None:
        super().__init__(message)


class InvalidCredentialError(LocationServiceError):
    """Raised when the identity authority rejects a credential. Terminal, no retry."""

    def __init__(self, message: str = "Invalid token") -> None:
        super().__init__(message)


class UpstreamUnavailableError(LocationServiceError):
    """
    Raised when the identity authority cannot be reached or answers garbage.

    Transient: callers may retry with backoff.
    """

    def __init__(self, message: str = "Identity provider unavailable") -> None:
        super().__init__(message)


class InvalidResponseShapeError(LocationServiceError):
    """Raised when an authority payload fails schema validation."""

    def __init__(self, what: str, details: str = "") -> None:
        self.what = what
        self.details = details
        super().__init__(f"Invalid {what} data from Discord")


class CrossIdentityWriteRejectedError(LocationServiceError):
    """Raised when a user tries to write a record that belongs to someone else."""

    def __init__(self, user_id: str, target_id: str) -> None:
        self.user_id = user_id
        self.target_id = target_id
        super().__init__("Cannot update other users' data")
