"""Normalisation of exam generation request parameters."""

import enum
import math
import uuid
from dataclasses import dataclass
from typing import Any

from errors import BadRequest
from providers.base import Provider, resolve_provider

MIN_QUESTIONS = 5
MAX_QUESTIONS = 50
DEFAULT_QUESTIONS = 20


class Difficulty(str, enum.Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


def clamp_question_count(raw: Any) -> int:
    """Clamp into [5, 50]; anything unparsable becomes 20."""
    if raw is None or isinstance(raw, bool):
        return DEFAULT_QUESTIONS
    try:
        value = float(str(raw).strip())
    except ValueError:
        return DEFAULT_QUESTIONS
    if math.isnan(value):
        return DEFAULT_QUESTIONS
    if math.isinf(value):
        return MAX_QUESTIONS if value > 0 else MIN_QUESTIONS
    return int(min(MAX_QUESTIONS, max(MIN_QUESTIONS, round(value))))


def normalize_difficulty(raw: Any) -> Difficulty:
    try:
        return Difficulty(str(raw).strip().lower())
    except ValueError:
        return Difficulty.MEDIUM


@dataclass
class GenerationRequest:
    submission_id: uuid.UUID
    question_count: int
    difficulty: Difficulty
    extra_instructions: str | None
    provider: Provider
    model: str | None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "GenerationRequest":
        """Validate a raw JSON body.

        Raises:
            BadRequest: Missing or malformed submissionId, unknown provider.
        """
        raw_id = str(payload.get("submissionId") or "").strip()
        if not raw_id:
            raise BadRequest("Missing submissionId")
        try:
            submission_id = uuid.UUID(raw_id)
        except ValueError:
            raise BadRequest("Invalid submissionId")

        extra = payload.get("extraInstructions")
        extra = str(extra).strip() if extra else None
        model = payload.get("model")
        model = str(model).strip() if model else None
        provider = payload.get("provider")

        return cls(
            submission_id=submission_id,
            question_count=clamp_question_count(payload.get("questionCount")),
            difficulty=normalize_difficulty(payload.get("difficulty")),
            extra_instructions=extra or None,
            provider=resolve_provider(str(provider) if provider else None),
            model=model or None,
        )
