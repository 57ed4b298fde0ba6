"""
Error taxonomy for the import pipeline.

Every failure that crosses the API boundary carries a stable machine code
and a human-readable message. Row-level problems are not exceptions; they
travel as Issue data on the rows themselves.
"""
from datetime import datetime, timezone
from typing import Any, Optional


class AppError(Exception):
    """
    Base exception for all application errors.

    Attributes:
        code: Error code (e.g., "IMPORT_NOT_FOUND")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp,
            }
        }


class UnauthorizedError(AppError):
    """Admin gate rejected the request (401)."""

    def __init__(self):
        super().__init__(
            code="UNAUTHORIZED",
            message="Admin token is missing or invalid",
            status_code=401,
        )


class UnsupportedFormatError(AppError):
    """Requested import format is unknown (415)."""

    def __init__(self, source_type: str):
        super().__init__(
            code="UNSUPPORTED_FORMAT",
            message=f"Unsupported import format: {source_type}",
            status_code=415,
            details={"format": source_type},
        )


class UnreadableFileError(AppError):
    """File cannot be read as the declared format (400)."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            code="INVALID_FILE",
            message=message,
            status_code=400,
            details=details,
        )


class FileTooLargeError(AppError):
    """Upload exceeds the configured size limit (413)."""

    def __init__(self, limit: int):
        super().__init__(
            code="FILE_TOO_LARGE",
            message=f"File too large (max {limit} bytes)",
            status_code=413,
            details={"limit": limit},
        )


class JobNotFoundError(AppError):
    """Import job not found (404)."""

    def __init__(self, job_id: Optional[str] = None):
        super().__init__(
            code="IMPORT_NOT_FOUND",
            message="Import job not found",
            status_code=404,
            details={"id": job_id} if job_id else {},
        )


class CommitPreconditionError(AppError):
    """Commit rejected before touching anything (409)."""

    def __init__(self, code: str, message: str, details: Optional[dict] = None):
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details,
        )


class CommitFailedError(AppError):
    """Commit transaction failed and was rolled back (500)."""

    def __init__(self, job_id: str):
        super().__init__(
            code="COMMIT_FAILED",
            message="Import commit failed and was rolled back",
            status_code=500,
            details={"id": job_id},
        )


class UndoUnavailableError(AppError):
    """Undo refused; nothing was reverted (409)."""

    def __init__(self, code: str, message: str, details: Optional[dict] = None):
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details,
        )


class ResourceNotFoundError(AppError):
    """Catalog product or webhook not found (404)."""

    def __init__(self, resource: str, resource_id: int):
        super().__init__(
            code=f"{resource.upper()}_NOT_FOUND",
            message=f"{resource.capitalize()} not found",
            status_code=404,
            details={"id": resource_id},
        )
