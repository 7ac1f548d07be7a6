"""
core/errors.py -- Typed failures shared by auth/, vault/, gateway/ and api/.

Every exception that can reach the HTTP boundary derives from AppError and
carries its own status_code and machine-checkable code. api/main.py registers
one handler for AppError that renders the standard error envelope:

    {"error": {"code": "...", "message": "..."}}

The message is always a short, caller-safe string. Detail that could leak key
material or ciphertext belongs in server logs only.

DecryptionError is the one exception that is NOT an AppError: it is internal
to the vault layer, which recovers it into StorageError.
"""


class AppError(Exception):
    status_code: int = 500
    code: str = "internal_error"
    message: str = "An unexpected error occurred."

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class InvalidToken(AppError):
    """Identity token is malformed, untrusted, expired or for another audience."""

    status_code = 401
    code = "invalid_token"
    message = "Identity token could not be verified."


class Unauthenticated(AppError):
    """No valid session evidence on a protected route."""

    status_code = 401
    code = "unauthorized"
    message = "Authentication required."


class NoCredential(AppError):
    """Neither a per-user nor a fallback upstream credential is available."""

    status_code = 400
    code = "no_api_key"
    message = "No API key configured. Save your API key before starting a conversation."


class InvalidUpstreamPath(AppError):
    status_code = 400
    code = "invalid_path"
    message = "Upstream path is not allowed."


class StorageError(AppError):
    """Vault integrity or database failure."""

    status_code = 500
    code = "storage_error"
    message = "Stored credential could not be read."


class UpstreamError(AppError):
    """The upstream service could not be reached (no response)."""

    status_code = 502
    code = "upstream_unavailable"
    message = "Failed to fetch data from the upstream service."


class DecryptionError(Exception):
    """Ciphertext/IV pair does not decrypt under the active key."""
