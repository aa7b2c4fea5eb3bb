"""Error taxonomy shared by every layer of the service.

Components raise these with a human-readable message; the request boundary
(main.py exception handler, or the exam stream) maps them to an HTTP status
or an in-band ``error`` event.
"""

from typing import Any


class AppError(Exception):
    """Base class for errors that carry a user-visible message."""

    status_code = 400

    def __init__(self, message: str, **extra: Any):
        self.message = message
        self.extra = extra
        super().__init__(message)

    def to_body(self) -> dict[str, Any]:
        return {"message": self.message, **self.extra}


class Unauthorized(AppError):
    status_code = 401


class Forbidden(AppError):
    status_code = 403


class NotFound(AppError):
    status_code = 404


class BadRequest(AppError):
    status_code = 400


class PaymentRequired(AppError):
    status_code = 402


class ConfigurationError(AppError):
    """Missing credentials or an unusable provider configuration."""


class UpstreamError(AppError):
    """A backend (object store, LLM provider, database) failed."""


class StorageError(UpstreamError):
    pass


class MaterialFetchError(UpstreamError):
    def __init__(self, path: str, message: str):
        self.path = path
        super().__init__(f"Could not download file {path}: {message}")


class AttachmentUploadError(UpstreamError):
    def __init__(self, file_name: str, message: str):
        self.file_name = file_name
        super().__init__(f"Failed to upload attachment {file_name}: {message}")


class NoAttachmentsError(UpstreamError):
    def __init__(self, message: str = "No attachments available for analysis. Please upload the course materials again."):
        super().__init__(message)


class EmptyGenerationError(UpstreamError):
    pass


class RenderError(UpstreamError):
    pass


class UploadError(UpstreamError):
    pass


class PersistenceError(UpstreamError):
    pass
