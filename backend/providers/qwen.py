"""Qwen (DashScope) backend: upload files first, then reference them by id."""

import logging
from typing import AsyncIterator

from openai import AsyncOpenAI, OpenAIError

from errors import AttachmentUploadError, EmptyGenerationError, NoAttachmentsError, UpstreamError
from exams.prompt import ExamPrompt
from .base import Attachment, ExamProvider, Provider

logger = logging.getLogger(__name__)

FILE_PURPOSE = "file-extract"
TEMPERATURE = 0.3


class QwenProvider(ExamProvider):
    provider = Provider.QWEN

    def __init__(self, client: AsyncOpenAI, model: str):
        super().__init__(model)
        self.client = client

    async def _upload(self, attachments: list[Attachment]) -> list[tuple[str, str]]:
        """Upload attachments in order, returning (label, file_id) pairs."""
        handles: list[tuple[str, str]] = []
        for attachment in attachments:
            source = attachment.file
            try:
                uploaded = await self.client.files.create(
                    file=(source.file_name, source.data, attachment.mime_type),
                    purpose=FILE_PURPOSE,
                )
            except OpenAIError as e:
                raise AttachmentUploadError(source.file_name, str(e)) from e
            logger.info("Uploaded %s to Qwen as %s", source.file_name, uploaded.id)
            handles.append((attachment.label, uploaded.id))
        return handles

    async def compose(self, attachments: list[Attachment], prompt: ExamPrompt) -> AsyncIterator[str]:
        handles = await self._upload(attachments)
        if not handles:
            raise NoAttachmentsError()

        summary = [
            f"Attachment {i} ({label}): fileid://{file_id}"
            for i, (label, file_id) in enumerate(handles, start=1)
        ]
        messages = [
            {"role": "system", "content": prompt.system_message},
            *({"role": "system", "content": f"fileid://{file_id}"} for _, file_id in handles),
            {"role": "user", "content": prompt.render(summary)},
        ]

        logger.info("Qwen generation: model=%s, attachments=%d", self.model, len(handles))
        try:
            completion = await self.client.chat.completions.create(
                model=self.model,
                temperature=TEMPERATURE,
                messages=messages,
            )
        except OpenAIError as e:
            raise UpstreamError(f"Qwen generation failed: {e}") from e

        content = completion.choices[0].message.content if completion.choices else None
        markdown = (content or "").strip()
        if not markdown:
            raise EmptyGenerationError("No exam content was returned by the model.")
        yield markdown
