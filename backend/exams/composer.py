"""Drive a provider to write one exam, surfacing fragments as they arrive."""

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from errors import EmptyGenerationError, NoAttachmentsError
from materials.fetch import StoredMaterialFile
from providers.base import Attachment, ExamProvider
from .prompt import build_exam_prompt

logger = logging.getLogger(__name__)

FragmentSink = Callable[[str], Awaitable[None]]


@dataclass
class ExamParameters:
    course_title: str
    course_description: str | None
    question_count: int
    difficulty: str
    extra_instructions: str | None


def label_attachments(
    slides: list[StoredMaterialFile], samples: list[StoredMaterialFile]
) -> list[Attachment]:
    """Slides first, then sample exams, each numbered within its kind."""
    attachments = [
        Attachment(label=f"Course slides ({i})", file=f) for i, f in enumerate(slides, start=1)
    ]
    attachments.extend(
        Attachment(label=f"Sample exam ({i})", file=f) for i, f in enumerate(samples, start=1)
    )
    return attachments


async def compose_exam(
    provider: ExamProvider,
    slides: list[StoredMaterialFile],
    samples: list[StoredMaterialFile],
    params: ExamParameters,
    on_fragment: FragmentSink | None = None,
) -> str:
    """Generate the exam Markdown.

    Each fragment is handed to on_fragment before the next one is requested,
    so callers can show partial output.

    Raises:
        NoAttachmentsError: If there are no slides and no samples.
        EmptyGenerationError: If the provider produced only whitespace.
    """
    attachments = label_attachments(slides, samples)
    if not attachments:
        raise NoAttachmentsError()

    prompt = build_exam_prompt(
        params.course_title,
        params.course_description,
        params.question_count,
        params.difficulty,
        params.extra_instructions,
    )

    fragments: list[str] = []
    async for fragment in provider.compose(attachments, prompt):
        fragments.append(fragment)
        if on_fragment is not None:
            await on_fragment(fragment)

    markdown = "".join(fragments).strip()
    if not markdown:
        raise EmptyGenerationError("No exam content was returned by the model.")
    logger.info(
        "Composed exam with %s (%s): %d fragments, %d chars",
        provider.provider.value, provider.model, len(fragments), len(markdown),
    )
    return markdown
