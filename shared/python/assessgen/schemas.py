"""Pydantic schemas for the HTTP contract."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from assessgen.assessment import Difficulty, QuestionType


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class QuestionParams(CamelModel):
    number_of_questions: int = Field(default=5, ge=1, le=50)
    difficulty: Difficulty = Difficulty.MEDIUM
    type: QuestionType = QuestionType.MCQ


class YouTubeAssessmentRequest(QuestionParams):
    video_url: str | None = None


class YouTubeAudioRequest(CamelModel):
    video_url: str | None = None


class AssessmentMetadata(CamelModel):
    type: QuestionType
    difficulty: Difficulty
    question_count: int
    transcript_source: str | None = None
    text_length: int | None = None
    parser: str | None = None


class AssessmentResponse(CamelModel):
    success: bool = True
    video_id: str | None = None
    assessment: list[Any] | dict[str, Any]
    metadata: AssessmentMetadata


class PdfTextResponse(CamelModel):
    success: bool = True
    text: str
    length: int
    message: str


class ErrorResponse(CamelModel):
    success: bool = False
    message: str
    error: str | None = None


class BotResponse(BaseModel):
    response: str


class BotAssessmentResponse(BaseModel):
    assessment: str
