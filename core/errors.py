class AuthError(Exception):
    """Base class for failures raised by the auth core."""


class IdentityConflict(AuthError):
    """Issuance refused: the claimed email belongs to a user this provider may not link to.

    The message is deliberately generic; callers must not surface which
    provider or account collided.
    """

    def __init__(self, message: str = "sign in failed"):
        super().__init__(message)


class StorageUnavailable(AuthError):
    """The identity store could not be reached, even after retrying."""

    def __init__(self, message: str = "storage unavailable"):
        super().__init__(message)


class LoginRequired(AuthError):
    """A server-rendered route was requested without a live session."""

    def __init__(self, next_path: str | None = None):
        super().__init__("unauthenticated")
        self.next_path = next_path
