"""
Error taxonomy for the credential broker.

Every error a caller can see derives from BrokerError and carries a stable
code, an HTTP status, a retryable flag and a message that is safe to return
to the client. Internal causes are chained with `raise ... from exc` and
logged, never put into the message.

CorruptPayload is the cipher/codec level failure; it is a ValueError and is
translated to CorruptStore by the vault.
"""


class BrokerError(Exception):
    """Base class; also used directly for generic internal failures."""

    code = "internal"
    status_code = 500
    retryable = False
    default_message = "Internal error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class InvalidArgument(BrokerError):
    code = "invalid-argument"
    status_code = 400
    default_message = "Missing required fields."


class UnsupportedProvider(InvalidArgument):
    default_message = "Unsupported provider"


class InvalidCredentials(BrokerError):
    """Bad password or rejected authorization code. Deliberately generic."""

    code = "not-found"
    status_code = 404
    default_message = "Invalid credentials"


class NotFound(BrokerError):
    code = "not-found"
    status_code = 404
    default_message = "No stored tokens for user"


class AlreadyExists(BrokerError):
    code = "already-exists"
    status_code = 409
    default_message = "Email already registered."


class FailedPrecondition(BrokerError):
    code = "failed-precondition"
    status_code = 412
    default_message = "Failed precondition"


class MissingKey(FailedPrecondition):
    default_message = "Encryption key not provided"


class NoRefreshToken(FailedPrecondition):
    default_message = "No refresh token available"


class PermissionDenied(BrokerError):
    code = "permission-denied"
    status_code = 403
    default_message = "Permission denied"


class CorruptStore(BrokerError):
    """Stored record cannot be decrypted or decoded. Not retryable."""

    default_message = "Corrupt token store"


class ProviderUnavailable(BrokerError):
    """Upstream identity service failed; the caller may retry."""

    code = "unavailable"
    status_code = 503
    retryable = True
    default_message = "Identity provider unavailable"


class CorruptPayload(ValueError):
    """Raised by crypto and codec when a payload cannot be read back."""
