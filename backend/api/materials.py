"""Course material upload and listing endpoints.

POST /api/materials       - Upload slides (+ optional sample exams), create a submission
GET  /api/materials       - List the current user's submissions
GET  /api/materials/{id}  - Get one submission
"""

import uuid
import logging
from datetime import datetime

from fastapi import APIRouter, Depends, File, Form, UploadFile
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from auth.jwt import get_current_user_id
from config import settings
from errors import Forbidden, NotFound
from materials.paths import parse_storage_paths, serialize_storage_paths
from materials.uploads import IncomingFile, store_files, validate_course_fields, validate_files
from models import CourseSubmission, get_db
from storage import ObjectStore, get_object_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/materials", tags=["materials"])


class SubmissionOut(BaseModel):
    id: uuid.UUID
    owner_id: uuid.UUID
    course_title: str
    course_description: str | None
    slides_storage_paths: list[str]
    sample_storage_paths: list[str]
    created_at: datetime

    @classmethod
    def from_model(cls, submission: CourseSubmission) -> "SubmissionOut":
        return cls(
            id=submission.id,
            owner_id=submission.owner_id,
            course_title=submission.course_title,
            course_description=submission.course_description,
            slides_storage_paths=parse_storage_paths(submission.slides_storage_path),
            sample_storage_paths=parse_storage_paths(submission.sample_storage_path),
            created_at=submission.created_at,
        )


class SubmissionResponse(BaseModel):
    submission: SubmissionOut


async def _read_files(uploads: list[UploadFile] | None) -> list[IncomingFile]:
    """Read posted files, skipping empty inputs that carry no file name."""
    files = []
    for upload in uploads or []:
        if not upload.filename:
            continue
        files.append(IncomingFile(
            file_name=upload.filename,
            content_type=upload.content_type,
            data=await upload.read(),
        ))
    return files


async def get_owned_submission(
    db: AsyncSession, submission_id: uuid.UUID, user_id: uuid.UUID
) -> CourseSubmission:
    """Load a submission, enforcing ownership.

    Raises:
        NotFound: No such submission.
        Forbidden: It belongs to another user.
    """
    result = await db.execute(
        select(CourseSubmission).where(CourseSubmission.id == submission_id)
    )
    submission = result.scalar_one_or_none()
    if submission is None:
        raise NotFound("Course materials not found.")
    if submission.owner_id != user_id:
        raise Forbidden("You do not have access to these course materials.")
    return submission


@router.post("", response_model=SubmissionResponse, status_code=201)
async def upload_materials(
    courseTitle: str = Form(""),
    courseDescription: str = Form(""),
    slides: list[UploadFile] | None = File(None),
    sampleExam: list[UploadFile] | None = File(None),
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    store: ObjectStore = Depends(get_object_store),
):
    """Validate every file, store them, then record the submission."""
    title, description = validate_course_fields(courseTitle, courseDescription)
    slide_files = validate_files(await _read_files(slides), "slides", required=True)
    sample_files = validate_files(await _read_files(sampleExam), "sampleExam", required=False)

    await store.ensure_bucket(
        settings.storage_bucket, file_size_limit=settings.max_upload_mb * 1024 * 1024
    )
    slide_paths = await store_files(store, user_id, slide_files, "slides")
    sample_paths = await store_files(store, user_id, sample_files, "samples")

    submission = CourseSubmission(
        owner_id=user_id,
        course_title=title,
        course_description=description,
        slides_storage_path=serialize_storage_paths(slide_paths),
        sample_storage_path=serialize_storage_paths(sample_paths),
    )
    db.add(submission)
    await db.commit()
    await db.refresh(submission)

    logger.info(
        "Submission %s for user %s: %d slides, %d samples",
        submission.id, user_id, len(slide_paths), len(sample_paths),
    )
    return SubmissionResponse(submission=SubmissionOut.from_model(submission))


@router.get("", response_model=list[SubmissionOut])
async def list_materials(
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(CourseSubmission)
        .where(CourseSubmission.owner_id == user_id)
        .order_by(CourseSubmission.created_at.desc())
    )
    return [SubmissionOut.from_model(s) for s in result.scalars().all()]


@router.get("/{submission_id}", response_model=SubmissionOut)
async def get_material(
    submission_id: str,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    try:
        parsed_id = uuid.UUID(submission_id)
    except ValueError:
        raise NotFound("Course materials not found.")
    submission = await get_owned_submission(db, parsed_id, user_id)
    return SubmissionOut.from_model(submission)
