"""Utilities for exporting bank questions to the plain-text format used for imports."""

from __future__ import annotations

from examforge.constants.assessment_constants import ANSWER_LETTERS
from examforge.core.models import Question
from examforge.core.question_importer import PARAGRAPH_BREAK


def serialize_questions(questions: list[Question]) -> str:
    if not questions:
        return ""
    blocks = [_serialize_question(question) for question in questions]
    return "\n\n---\n\n".join(blocks) + "\n"


def _serialize_question(question: Question) -> str:
    lines: list[str] = []

    question_lines = _escape_lines(question.text)
    lines.append(f"Q: {question_lines[0]}")
    lines.extend(question_lines[1:])

    correct_letter = None
    for letter, answer in zip(ANSWER_LETTERS, question.answers):
        answer_lines = _escape_lines(answer.text)
        lines.append(f"{letter}: {answer_lines[0]}")
        lines.extend(answer_lines[1:])
        if answer.is_correct:
            correct_letter = letter

    if correct_letter is not None:
        lines.append(f"CORRECT: {correct_letter}")

    if question.tags:
        lines.append(f"TAGS: {', '.join(question.tags)}")

    return "\n".join(lines)


def _escape_lines(text: str) -> list[str]:
    # Blank lines would end the block on import
    lines = [line if line.strip() else PARAGRAPH_BREAK for line in text.splitlines()]
    return lines or [text]
