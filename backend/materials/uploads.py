"""Validate and store uploaded course materials."""

import logging
import uuid
from dataclasses import dataclass

from config import settings
from errors import BadRequest, StorageError, UploadError
from storage import ObjectStore

logger = logging.getLogger(__name__)

ACCEPTED_MIME_TYPES = {
    "application/pdf",
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
}

TITLE_MIN_LENGTH = 3
TITLE_MAX_LENGTH = 120
DESCRIPTION_MAX_LENGTH = 500


@dataclass
class IncomingFile:
    file_name: str
    content_type: str | None
    data: bytes


def validate_course_fields(title: str, description: str) -> tuple[str, str | None]:
    """Return the stripped title and description (None when blank)."""
    title = (title or "").strip()
    description = (description or "").strip()
    if not title:
        raise BadRequest("Course title is required.")
    if not TITLE_MIN_LENGTH <= len(title) <= TITLE_MAX_LENGTH:
        raise BadRequest(
            f"Course title must be between {TITLE_MIN_LENGTH} and {TITLE_MAX_LENGTH} characters."
        )
    if len(description) > DESCRIPTION_MAX_LENGTH:
        raise BadRequest(
            f"Course description must be at most {DESCRIPTION_MAX_LENGTH} characters."
        )
    return title, description or None


def validate_files(files: list[IncomingFile], field: str, required: bool) -> list[IncomingFile]:
    """Check presence, type and size of the files posted under one field.

    Raises:
        BadRequest: On the first file that fails a check.
    """
    if not files:
        if required:
            raise BadRequest(f"Missing required file: {field}")
        return []

    max_bytes = settings.max_upload_mb * 1024 * 1024
    for f in files:
        if f.content_type not in ACCEPTED_MIME_TYPES:
            raise BadRequest(
                f"{field} must be a PDF or PowerPoint file. Received {f.content_type}"
            )
        if len(f.data) > max_bytes:
            raise BadRequest(f"{field} exceeds the {settings.max_upload_mb}MB limit.")
        if len(f.data) == 0:
            raise BadRequest(f"{field} file {f.file_name} is empty.")
    return files


def safe_file_name(file_name: str) -> str:
    name = (file_name or "").replace("\\", "/").rsplit("/", 1)[-1].strip()
    return name or "upload"


def material_path(user_id: uuid.UUID, category: str, file_name: str) -> str:
    return f"{user_id}/{category}/{uuid.uuid4()}-{safe_file_name(file_name)}"


async def store_files(
    store: ObjectStore, user_id: uuid.UUID, files: list[IncomingFile], category: str
) -> list[str]:
    """Upload files one by one under {user}/{category}/. Returns their paths."""
    paths: list[str] = []
    for f in files:
        path = material_path(user_id, category, f.file_name)
        try:
            await store.upload(settings.storage_bucket, path, f.data, f.content_type)
        except StorageError as e:
            raise UploadError(f"Failed to upload {f.file_name}: {e.message}") from e
        logger.info("Stored %s (%d bytes) at %s", f.file_name, len(f.data), path)
        paths.append(path)
    return paths
