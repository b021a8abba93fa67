"""Error types raised by the Build API client and the asset pipelines.

Convention:
- Every error raised on purpose derives from ``FlexBuildError`` and carries an
  ``ErrorKind`` so callers can branch on ``exc.kind`` instead of probing for
  optional attributes.  ``str(exc)`` is the operator-facing message.
- Local filesystem failures (disk full, permission denied) are not wrapped;
  they propagate as ``OSError``.
- A missing or unparseable local metadata file is *not* an error: the store
  reports it as "no prior state".
"""

from __future__ import annotations

from enum import StrEnum


class ErrorKind(StrEnum):
    """Closed set of failure categories reported to the operator."""

    NOT_LOGGED_IN = "not-logged-in"
    NOT_A_DIRECTORY = "not-a-directory"
    VALIDATION = "validation-error"
    STAGING = "staging-error"
    TRANSPORT = "transport-error"


class FlexBuildError(Exception):
    """Base class for all structured errors."""

    kind: ErrorKind

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotLoggedInError(FlexBuildError):
    """Raised when a request needs an API key and none is available."""

    kind = ErrorKind.NOT_LOGGED_IN

    def __init__(self, message: str = "Not logged in. Please run: flex-build login") -> None:
        super().__init__(message)


class NotADirectoryPathError(FlexBuildError):
    """Raised when an asset directory path is unusable."""

    kind = ErrorKind.NOT_A_DIRECTORY

    def __init__(self, path: str, message: str | None = None) -> None:
        super().__init__(message or f"{path} is not a directory")
        self.path = path


class AssetValidationError(FlexBuildError):
    """Raised when a JSON asset does not parse; nothing has been sent yet."""

    kind = ErrorKind.VALIDATION

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Invalid JSON in {path}: {reason}")
        self.path = path
        self.reason = reason


class AssetStagingError(FlexBuildError):
    """Raised when the server rejects the content of an asset being staged."""

    kind = ErrorKind.STAGING

    def __init__(self, path: str, detail: str) -> None:
        super().__init__(
            f"Failed to stage image {path}: {detail}\n"
            "Fix the file and rerun assets push to retry staging."
        )
        self.path = path
        self.detail = detail


class ApiError(FlexBuildError):
    """Raised for non-2xx responses, network failures and malformed responses.

    ``status`` is 0 when no HTTP response was received.
    """

    kind = ErrorKind.TRANSPORT

    def __init__(self, code: str, message: str, status: int) -> None:
        super().__init__(message)
        self.code = code
        self.status = status


class AssetInvalidContentError(ApiError):
    """The staging endpoint rejected a file as unsupported or corrupt."""

    CODE = "asset-invalid-content"

    def __init__(self, path: str, detail: str, status: int) -> None:
        super().__init__(self.CODE, detail, status)
        self.path = path
        self.detail = detail
