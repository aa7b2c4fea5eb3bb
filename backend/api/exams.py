"""Exam generation, listing, download and preview endpoints.

POST /api/exams                - Generate an exam, streamed as NDJSON events
GET  /api/exams                - List the current user's exams
GET  /api/exams/{id}           - Get one exam with its Markdown
GET  /api/exams/{id}/download  - Spend a free download (or pay) for a signed URL
GET  /api/exams/{id}/preview   - First page of the exam PDF
"""

import asyncio
import json
import uuid
import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response, StreamingResponse
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from api.materials import get_owned_submission
from auth.jwt import get_current_user_id
from billing.ledger import get_balance, get_or_create_profile, try_consume
from config import settings
from errors import BadRequest, Forbidden, NotFound, PaymentRequired, StorageError
from exams.params import GenerationRequest
from exams.pipeline import GENERIC_FAILURE, TERMINAL_EVENTS, ExamJob, error_event
from exams.preview import extract_first_page
from models import DownloadEvent, ExamGeneration, get_db, get_session_factory
from providers import ProviderRegistry, get_provider_registry
from storage import ObjectStore, get_object_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/exams", tags=["exams"])

# Jobs keep running after a client disconnects; hold references until they finish
_running_jobs: set[asyncio.Task] = set()


class ExamSummaryOut(BaseModel):
    id: uuid.UUID
    submission_id: uuid.UUID
    status: str
    model: str | None
    has_pdf: bool
    metadata: dict[str, Any] | None
    created_at: datetime


class ExamOut(ExamSummaryOut):
    prompt: str | None
    output_markdown: str | None


def _summary(exam: ExamGeneration) -> dict[str, Any]:
    return {
        "id": exam.id,
        "submission_id": exam.submission_id,
        "status": exam.status,
        "model": exam.model,
        "has_pdf": bool(exam.pdf_storage_path),
        "metadata": exam.meta,
        "created_at": exam.created_at,
    }


class DownloadOut(BaseModel):
    signedUrl: str
    costCents: int
    freeDownloadsRemaining: int


def _ndjson_event(data: dict) -> str:
    """Format a dict as one NDJSON line."""
    return json.dumps(data, ensure_ascii=False) + "\n"


async def _exam_stream(job: ExamJob):
    """Async generator yielding the job's events as NDJSON lines.

    The job runs as its own task and feeds a queue; a sentinel queued when
    the task finishes guarantees the stream ends with one terminal event
    even if the task dies without emitting it.
    """
    queue: asyncio.Queue[dict | None] = asyncio.Queue()
    task = asyncio.create_task(job.run(queue.put))
    _running_jobs.add(task)
    task.add_done_callback(_running_jobs.discard)
    task.add_done_callback(lambda _: queue.put_nowait(None))

    try:
        while True:
            event = await queue.get()
            if event is None:
                logger.error("Exam job ended without a terminal event")
                yield _ndjson_event(error_event(GENERIC_FAILURE))
                break
            yield _ndjson_event(event)
            if event["type"] in TERMINAL_EVENTS:
                break
    finally:
        logger.info("Exam stream closed for submission %s", job.submission_id)


async def get_owned_exam(db: AsyncSession, exam_id: str, user_id: uuid.UUID) -> ExamGeneration:
    """Load an exam, enforcing ownership.

    Raises:
        NotFound: Malformed id or no such exam.
        Forbidden: It belongs to another user.
    """
    try:
        parsed_id = uuid.UUID(exam_id)
    except ValueError:
        raise NotFound("Exam not found.")
    result = await db.execute(select(ExamGeneration).where(ExamGeneration.id == parsed_id))
    exam = result.scalar_one_or_none()
    if exam is None:
        raise NotFound("Exam not found.")
    if exam.owner_id != user_id:
        raise Forbidden("You do not have permission to access this exam.")
    return exam


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("")
async def generate_exam(
    request: Request,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    store: ObjectStore = Depends(get_object_store),
    providers: ProviderRegistry = Depends(get_provider_registry),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
):
    """Validate the request, then stream the generation job's events.

    Validation failures are ordinary JSON errors; once the stream is open,
    failures arrive as an in-band ``error`` event on a 200 response.
    """
    try:
        payload = await request.json()
    except ValueError:
        raise BadRequest("Request body must be a JSON object.")
    if not isinstance(payload, dict):
        raise BadRequest("Request body must be a JSON object.")

    generation_request = GenerationRequest.from_payload(payload)
    submission = await get_owned_submission(db, generation_request.submission_id, user_id)
    logger.info(
        "Exam generation for submission %s: provider=%s, questions=%d, difficulty=%s",
        submission.id,
        generation_request.provider.value,
        generation_request.question_count,
        generation_request.difficulty.value,
    )

    job = ExamJob(generation_request, submission, user_id, store, providers, session_factory)
    return StreamingResponse(
        _exam_stream(job),
        media_type="application/x-ndjson",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.get("", response_model=list[ExamSummaryOut])
async def list_exams(
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(ExamGeneration)
        .where(ExamGeneration.owner_id == user_id)
        .order_by(ExamGeneration.created_at.desc())
    )
    return [ExamSummaryOut(**_summary(exam)) for exam in result.scalars().all()]


@router.get("/{exam_id}", response_model=ExamOut)
async def get_exam(
    exam_id: str,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    exam = await get_owned_exam(db, exam_id, user_id)
    return ExamOut(**_summary(exam), prompt=exam.prompt, output_markdown=exam.output_markdown)


@router.get("/{exam_id}/download", response_model=DownloadOut)
async def download_exam(
    exam_id: str,
    confirm_paid: str | None = Query(None, alias="confirmPaid"),
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    store: ObjectStore = Depends(get_object_store),
):
    """Issue a short-lived download link, spending a free credit if one is left.

    The credit decrement, link issuance and download record commit together;
    if issuing the link fails the credit is not spent.
    """
    exam = await get_owned_exam(db, exam_id, user_id)
    if not exam.pdf_storage_path:
        raise BadRequest("This exam has no PDF yet.")

    await get_or_create_profile(db, user_id)
    balance = await get_balance(db, user_id)
    has_credit = balance > 0 and await try_consume(db, user_id)

    cost_cents = 0
    if not has_credit:
        if confirm_paid != "true":
            remaining = await get_balance(db, user_id)
            await db.rollback()
            raise PaymentRequired(
                "Free downloads are used up. Each exam download costs "
                f"{settings.paid_download_cents / 100:.2f}. "
                "Please pay and retry with confirmPaid=true.",
                requiresPayment=True,
                freeDownloadsRemaining=remaining,
            )
        cost_cents = settings.paid_download_cents

    try:
        signed_url = await store.create_signed_url(
            settings.storage_bucket, exam.pdf_storage_path, settings.signed_url_ttl_seconds
        )
    except StorageError:
        # Undo the decrement, no link was issued
        await db.rollback()
        raise
    db.add(DownloadEvent(generation_id=exam.id, user_id=user_id, cost_cents=cost_cents))
    remaining = await get_balance(db, user_id)
    await db.commit()

    logger.info(
        "Download of exam %s by %s: cost=%d, free remaining=%d",
        exam.id, user_id, cost_cents, remaining,
    )
    return DownloadOut(signedUrl=signed_url, costCents=cost_cents, freeDownloadsRemaining=remaining)


@router.get("/{exam_id}/preview")
async def preview_exam(
    exam_id: str,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    store: ObjectStore = Depends(get_object_store),
):
    """Return only the first page of the exam PDF."""
    exam = await get_owned_exam(db, exam_id, user_id)
    if not exam.pdf_storage_path:
        raise BadRequest("This exam has no PDF yet.")

    stored = await store.download(settings.storage_bucket, exam.pdf_storage_path)
    preview = await asyncio.to_thread(extract_first_page, stored.data)
    return Response(
        content=preview,
        media_type="application/pdf",
        headers={
            "Content-Disposition": "inline; filename=preview.pdf",
            "Cache-Control": "private, max-age=300",
        },
    )
