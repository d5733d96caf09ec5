"""Assessment prompt construction and tolerant parsing of model output."""

from __future__ import annotations

from enum import StrEnum
import json
import logging
import re
from textwrap import dedent
from typing import Any

from assessgen.llm.providers import LLMProvider

logger = logging.getLogger(__name__)

JSON_ARRAY_PATTERN = re.compile(r"\[[\s\S]*\]")
QUESTION_LIST_ALIASES = ("questions", "items", "quiz", "assessment")


class QuestionType(StrEnum):
    MCQ = "MCQ"
    TF = "TF"
    SHORT_ANSWER = "SHORT_ANSWER"
    FILL_BLANK = "FILL_BLANK"


class Difficulty(StrEnum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


QUESTION_SHAPES: dict[QuestionType, str] = {
    QuestionType.MCQ: """
        {
          "question": "...",
          "options": ["A", "B", "C", "D"],
          "answer": "exact text of the correct option",
          "explanation": "one sentence"
        }""",
    QuestionType.TF: """
        {
          "question": "a statement to judge",
          "answer": true,
          "explanation": "one sentence"
        }""",
    QuestionType.SHORT_ANSWER: """
        {
          "question": "...",
          "answer": "expected short answer",
          "explanation": "one sentence"
        }""",
    QuestionType.FILL_BLANK: """
        {
          "question": "sentence with ____ marking the blank",
          "answer": "word or phrase for the blank",
          "explanation": "one sentence"
        }""",
}

TYPE_LABELS: dict[QuestionType, str] = {
    QuestionType.MCQ: "multiple-choice questions with exactly four options",
    QuestionType.TF: "true/false questions",
    QuestionType.SHORT_ANSWER: "short-answer questions",
    QuestionType.FILL_BLANK: "fill-in-the-blank questions",
}


def build_assessment_prompt(
    *,
    source_text: str,
    question_type: QuestionType,
    count: int,
    difficulty: Difficulty,
    max_chars: int = 30000,
) -> str:
    """Create a strict JSON prompt for quiz generation."""

    excerpt = source_text.strip()
    if len(excerpt) > max_chars:
        excerpt = excerpt[:max_chars].rstrip() + "..."
    shape = dedent(QUESTION_SHAPES[question_type]).strip()

    return dedent(
        f"""
        You are an assessment writer for teachers.
        Rules:
        - Write exactly {count} {TYPE_LABELS[question_type]}.
        - Difficulty: {difficulty.value}.
        - Base every question on the source below, never on outside knowledge.
        - Return ONLY a JSON array, no markdown fences and no text around it.
        - Each element has this shape:
        """
    ).strip() + "\n" + shape + "\n\nSource:\n" + excerpt


def parse_assessment_output(raw: str) -> list[Any] | dict[str, Any]:
    """Turn model output into a question list, or wrap it unparsed.

    Tries the span from the first ``[`` to the last ``]``. When that span is
    not valid JSON the whole text is parsed next, so an object such as
    ``{"questions": [...], "note": "[1]"}`` still yields its list; only when
    both parses fail is the text wrapped as ``{"rawResponse": raw}``. A JSON
    object holding a list under a known key yields that list. Never raises.
    """

    match = JSON_ARRAY_PATTERN.search(raw or "")
    if match:
        try:
            payload = json.loads(match.group(0))
        except json.JSONDecodeError:
            payload = None
        if isinstance(payload, list):
            return payload

    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        logger.info("assessment output is not JSON, returning raw response")
        return {"rawResponse": raw}

    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for alias in QUESTION_LIST_ALIASES:
            candidate = payload.get(alias)
            if isinstance(candidate, list):
                return candidate
    return {"rawResponse": raw}


class AssessmentGenerator:
    """Prompt the configured model for a quiz over some text."""

    def __init__(self, provider: LLMProvider, *, max_prompt_chars: int = 30000) -> None:
        self.provider = provider
        self.max_prompt_chars = max_prompt_chars

    async def generate(
        self,
        text: str,
        question_type: QuestionType,
        count: int,
        difficulty: Difficulty,
    ) -> str:
        prompt = build_assessment_prompt(
            source_text=text,
            question_type=question_type,
            count=count,
            difficulty=difficulty,
            max_chars=self.max_prompt_chars,
        )
        logger.info(
            "generating assessment",
            extra={
                "provider": self.provider.name,
                "question_type": question_type.value,
                "count": count,
                "difficulty": difficulty.value,
                "source_chars": len(text),
            },
        )
        return await self.provider.generate(prompt)

    async def generate_assessment(
        self,
        text: str,
        question_type: QuestionType,
        count: int,
        difficulty: Difficulty,
    ) -> list[Any] | dict[str, Any]:
        raw = await self.generate(text, question_type, count, difficulty)
        return parse_assessment_output(raw)
