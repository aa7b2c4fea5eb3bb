"""The exam generation job: fetch materials, generate, render, persist.

A job runs its stages in order and reports progress through an async
``emit`` callback. Whatever happens, run() emits exactly one terminal event
(``done`` or ``error``) and nothing after it. Failures are not retried and
nothing already written is rolled back.
"""

import asyncio
import enum
import logging
import uuid
from typing import Any, Awaitable, Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config import settings
from errors import AppError, PersistenceError, StorageError, UploadError
from materials.fetch import fetch_material_files, fetch_optional_material_files
from materials.paths import parse_storage_paths
from models import CourseSubmission, ExamGeneration, GenerationStatus
from providers import ProviderRegistry
from storage import ObjectStore
from .composer import ExamParameters, compose_exam
from .params import GenerationRequest
from .render import render_pdf_from_markdown

logger = logging.getLogger(__name__)

Event = dict[str, Any]
EventSink = Callable[[Event], Awaitable[None]]

TERMINAL_EVENTS = {"done", "error"}
GENERIC_FAILURE = "Failed to generate the mock exam, please try again later."


class JobStage(str, enum.Enum):
    VALIDATING = "validating"
    FETCHING_MATERIALS = "fetching-materials"
    GENERATING = "generating"
    RENDERING = "rendering"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


STAGE_MESSAGES = {
    JobStage.FETCHING_MATERIALS: "Course materials fetched.",
    JobStage.GENERATING: "Mock exam generated.",
    JobStage.RENDERING: "PDF rendered.",
    JobStage.PERSISTING: "Exam saved.",
}


def status_event(message: str) -> Event:
    return {"type": "status", "message": message}


def chunk_event(text: str) -> Event:
    return {"type": "chunk", "text": text}


def error_event(message: str) -> Event:
    return {"type": "error", "message": message}


def done_event(exam_id: uuid.UUID) -> Event:
    return {"type": "done", "examId": str(exam_id)}


def exam_pdf_path(user_id: uuid.UUID) -> str:
    return f"{user_id}/exams/{uuid.uuid4()}-exam.pdf"


class ExamJob:
    """One validated generation request for one owned submission."""

    def __init__(
        self,
        request: GenerationRequest,
        submission: CourseSubmission,
        user_id: uuid.UUID,
        store: ObjectStore,
        providers: ProviderRegistry,
        session_factory: async_sessionmaker[AsyncSession],
    ):
        self.request = request
        self.user_id = user_id
        self.store = store
        self.providers = providers
        self.session_factory = session_factory
        # Plain copies, the submission's session is gone once streaming starts
        self.submission_id = submission.id
        self.course_title = submission.course_title
        self.course_description = submission.course_description
        self.slide_paths = parse_storage_paths(submission.slides_storage_path)
        self.sample_paths = parse_storage_paths(submission.sample_storage_path)
        self.stage = JobStage.VALIDATING
        self.failed_stage: JobStage | None = None

    async def run(self, emit: EventSink) -> None:
        """Run every stage, then emit exactly one terminal event."""
        try:
            exam_id = await self._run_stages(emit)
        except AppError as e:
            logger.warning(
                "Exam job for submission %s failed at %s: %s",
                self.submission_id, self.stage.value, e.message,
            )
            self.failed_stage = self.stage
            self.stage = JobStage.FAILED
            await emit(error_event(e.message))
            return
        except Exception:
            logger.exception(
                "Exam job for submission %s crashed at %s", self.submission_id, self.stage.value
            )
            self.failed_stage = self.stage
            self.stage = JobStage.FAILED
            await emit(error_event(GENERIC_FAILURE))
            return

        self.stage = JobStage.DONE
        logger.info("Exam job for submission %s done: exam %s", self.submission_id, exam_id)
        await emit(done_event(exam_id))

    def _enter(self, stage: JobStage) -> None:
        self.stage = stage
        logger.info("Exam job for submission %s: %s", self.submission_id, stage.value)

    async def _complete(self, emit: EventSink) -> None:
        """Report that the current stage succeeded."""
        await emit(status_event(STAGE_MESSAGES[self.stage]))

    async def _run_stages(self, emit: EventSink) -> uuid.UUID:
        self._enter(JobStage.FETCHING_MATERIALS)
        slides, samples = await asyncio.gather(
            fetch_material_files(self.store, self.slide_paths),
            fetch_optional_material_files(self.store, self.sample_paths),
        )
        await self._complete(emit)

        self._enter(JobStage.GENERATING)
        provider = self.providers.get(self.request.provider, self.request.model)

        async def forward(fragment: str) -> None:
            await emit(chunk_event(fragment))

        markdown = await compose_exam(
            provider,
            slides,
            samples,
            ExamParameters(
                course_title=self.course_title,
                course_description=self.course_description,
                question_count=self.request.question_count,
                difficulty=self.request.difficulty.value,
                extra_instructions=self.request.extra_instructions,
            ),
            on_fragment=forward,
        )
        await self._complete(emit)

        self._enter(JobStage.RENDERING)
        pdf = await asyncio.to_thread(render_pdf_from_markdown, markdown)
        await self._complete(emit)

        self._enter(JobStage.PERSISTING)
        pdf_path = exam_pdf_path(self.user_id)
        try:
            await self.store.upload(settings.storage_bucket, pdf_path, pdf, "application/pdf")
        except StorageError as e:
            raise UploadError(f"Failed to upload PDF: {e.message}") from e

        record = ExamGeneration(
            id=uuid.uuid4(),
            submission_id=self.submission_id,
            owner_id=self.user_id,
            status=GenerationStatus.COMPLETED.value,
            model=provider.model,
            prompt=self.request.extra_instructions,
            output_markdown=markdown,
            pdf_storage_path=pdf_path,
            meta={
                "questionCount": self.request.question_count,
                "difficulty": self.request.difficulty.value,
                "provider": provider.provider.value,
                "model": provider.model,
                "slideCount": len(slides),
                "sampleCount": len(samples),
            },
        )
        try:
            async with self.session_factory() as db:
                db.add(record)
                await db.commit()
        except SQLAlchemyError as e:
            # The PDF stays in storage without a record pointing at it
            logger.error("Orphaned PDF %s after insert failure: %s", pdf_path, e)
            raise PersistenceError(f"Failed to save the generation record: {e}") from e
        await self._complete(emit)
        return record.id
