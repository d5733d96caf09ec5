from __future__ import annotations

import asyncio

from assessgen.assessment import (
    AssessmentGenerator,
    Difficulty,
    QuestionType,
    build_assessment_prompt,
    parse_assessment_output,
)
from assessgen.llm.providers import LLMProvider


class _RecordingProvider(LLMProvider):
    name = "recording"

    def __init__(self, output: str) -> None:
        self.output = output
        self.prompts: list[str] = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return self.output


def test_parse_extracts_array_embedded_in_prose() -> None:
    raw = 'Here is your quiz:\n[{"q":1}]\nGood luck!'
    assert parse_assessment_output(raw) == [{"q": 1}]


def test_parse_strips_markdown_fences() -> None:
    raw = '```json\n[{"question": "2+2?", "answer": "4"}]\n```'
    assert parse_assessment_output(raw) == [{"question": "2+2?", "answer": "4"}]


def test_parse_accepts_object_with_questions_list() -> None:
    raw = '{"questions": [{"question": "Q1"}]}'
    assert parse_assessment_output(raw) == [{"question": "Q1"}]


def test_parse_wraps_non_json_output() -> None:
    raw = "Sorry, I cannot help with that."
    assert parse_assessment_output(raw) == {"rawResponse": raw}


def test_parse_wraps_broken_array() -> None:
    raw = '[{"question": "unterminated"'
    assert parse_assessment_output(raw) == {"rawResponse": raw}


def test_parse_falls_back_to_whole_text_when_bracket_span_is_not_json() -> None:
    raw = '{"questions": [{"question": "Q1"}], "note": "see [1]"}'
    assert parse_assessment_output(raw) == [{"question": "Q1"}]


def test_parse_wraps_object_without_question_list() -> None:
    raw = '{"note": "nothing here"}'
    assert parse_assessment_output(raw) == {"rawResponse": raw}


def test_prompt_mentions_type_count_and_difficulty() -> None:
    prompt = build_assessment_prompt(
        source_text="The French Revolution began in 1789.",
        question_type=QuestionType.TF,
        count=3,
        difficulty=Difficulty.EASY,
    )
    assert "exactly 3 true/false questions" in prompt
    assert "Difficulty: easy" in prompt
    assert prompt.endswith("The French Revolution began in 1789.")


def test_prompt_truncates_long_sources() -> None:
    prompt = build_assessment_prompt(
        source_text="word " * 5000,
        question_type=QuestionType.MCQ,
        count=5,
        difficulty=Difficulty.MEDIUM,
        max_chars=1000,
    )
    source = prompt.split("Source:\n", 1)[1]
    assert len(source) <= 1003
    assert source.endswith("...")


def test_generator_returns_parsed_assessment() -> None:
    provider = _RecordingProvider('[{"question": "Q1", "answer": true}]')
    generator = AssessmentGenerator(provider)

    result = asyncio.run(
        generator.generate_assessment("Some lesson text", QuestionType.TF, 1, Difficulty.HARD)
    )

    assert result == [{"question": "Q1", "answer": True}]
    assert "Some lesson text" in provider.prompts[0]
