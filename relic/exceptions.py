"""
Relic Errors — Error taxonomy shared by every Relic operation.

Every error carries a stable ``code`` (see :class:`ErrorCode`) so callers
and the CLI can report failures without inspecting messages.

Security Note:
    Messages only ever name key paths and error kinds. Never put plaintext
    values, master keys or tokens into an error message.
"""
from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    """Stable error codes reported by Relic."""

    MISSING_ARTIFACT = "RELIC_ERR_MISSING_ARTIFACT"
    MISSING_MASTER_KEY = "RELIC_ERR_MISSING_MASTER_KEY"
    DECRYPT_FAILED = "RELIC_ERR_DECRYPT_FAILED"
    INVALID_JSON = "RELIC_ERR_INVALID_JSON"
    INVALID_FORMAT = "RELIC_ERR_INVALID_ARTIFACT_FORMAT"
    UNSUPPORTED_VERSION = "RELIC_ERR_UNSUPPORTED_VERSION"
    KEY_NOT_FOUND = "RELIC_ERR_KEY_NOT_FOUND"
    EDITOR_FAILED = "RELIC_ERR_EDITOR_FAILED"


class RelicError(Exception):
    """Base class for Relic errors."""

    code: ErrorCode = ErrorCode.INVALID_FORMAT
    default_message = "Relic operation failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"{self.message} ({self.code.value})"


class MissingArtifact(RelicError):
    """No artifact was provided or found."""

    code = ErrorCode.MISSING_ARTIFACT
    default_message = (
        "Artifact not provided and not found in environment variable"
    )


class MissingMasterKey(RelicError):
    """No master key was provided or found."""

    code = ErrorCode.MISSING_MASTER_KEY
    default_message = (
        "Master key not provided and not found in key file or "
        "environment variable"
    )


class InvalidFormat(RelicError):
    """Artifact or token is structurally malformed."""

    code = ErrorCode.INVALID_FORMAT
    default_message = "Invalid artifact format - expected a JSON object"


class UnsupportedVersion(InvalidFormat):
    """Token carries a version tag this release cannot read."""

    code = ErrorCode.UNSUPPORTED_VERSION

    def __init__(self, version: str):
        self.version = version
        super().__init__(f"Unsupported artifact version: {version}")


class DecryptFailed(RelicError):
    """Authentication failed: wrong master key or tampered data.

    ``path`` is the dotted key path of the leaf that failed, when known.
    """

    code = ErrorCode.DECRYPT_FAILED
    default_message = "Failed to decrypt artifact - wrong key or corrupted data"

    def __init__(self, message: Optional[str] = None, path: Optional[str] = None):
        self.path = path
        if message is None and path:
            message = f"{self.default_message} at key '{path}'"
        super().__init__(message)


class InvalidJson(RelicError):
    """Plaintext content is not a JSON object."""

    code = ErrorCode.INVALID_JSON
    default_message = "Secrets must be a JSON object"


class KeyNotFound(RelicError, KeyError):
    """Requested secret key does not exist."""

    code = ErrorCode.KEY_NOT_FOUND

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Key not found: {key}")

    def __str__(self) -> str:
        return RelicError.__str__(self)


class EditorFailed(RelicError):
    """External editor could not be spawned or exited with an error."""

    code = ErrorCode.EDITOR_FAILED
    default_message = "Editor failed"
