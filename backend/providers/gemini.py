"""Gemini backend: stage files, embed their URIs, stream the answer."""

import io
import logging
from typing import AsyncIterator

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from errors import AttachmentUploadError, EmptyGenerationError, NoAttachmentsError, UpstreamError
from exams.prompt import ExamPrompt
from .base import Attachment, ExamProvider, Provider

logger = logging.getLogger(__name__)


class GeminiProvider(ExamProvider):
    provider = Provider.GEMINI

    def __init__(self, client: genai.Client, model: str):
        super().__init__(model)
        self.client = client

    async def _stage(self, attachment: Attachment) -> str:
        source = attachment.file
        try:
            uploaded = await self.client.aio.files.upload(
                file=io.BytesIO(source.data),
                config=types.UploadFileConfig(
                    mime_type=attachment.mime_type,
                    display_name=source.file_name,
                ),
            )
        except genai_errors.APIError as e:
            raise AttachmentUploadError(source.file_name, str(e)) from e
        if not uploaded.uri:
            raise AttachmentUploadError(source.file_name, "no file URI returned")
        logger.info("Staged %s on Gemini at %s", source.file_name, uploaded.uri)
        return uploaded.uri

    async def compose(self, attachments: list[Attachment], prompt: ExamPrompt) -> AsyncIterator[str]:
        if not attachments:
            raise NoAttachmentsError()

        uris = [await self._stage(attachment) for attachment in attachments]
        summary = [
            f"Attachment {i} ({attachment.label}) is uploaded with this message for reference."
            for i, attachment in enumerate(attachments, start=1)
        ]
        parts = [types.Part.from_text(text=prompt.render(summary))]
        parts.extend(
            types.Part.from_uri(file_uri=uri, mime_type=attachment.mime_type)
            for attachment, uri in zip(attachments, uris)
        )

        logger.info("Gemini generation: model=%s, attachments=%d", self.model, len(uris))
        produced = False
        try:
            stream = await self.client.aio.models.generate_content_stream(
                model=self.model,
                contents=[types.Content(role="user", parts=parts)],
                config=types.GenerateContentConfig(system_instruction=prompt.system_message),
            )
            async for chunk in stream:
                text = chunk.text
                if text:
                    produced = True
                    yield text
        except genai_errors.APIError as e:
            raise UpstreamError(f"Gemini generation failed: {e}") from e

        if not produced:
            raise EmptyGenerationError("No exam content was returned by Gemini.")
