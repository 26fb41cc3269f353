"""Utilities for importing bank questions from a human-friendly text file.

File format (repeat blocks separated by blank lines or '---'):

    Q: Question text (supports markdown + LaTeX). Additional lines until the
       next marker are treated as part of the question.
    A: First answer text
    B: Second answer text
    ...            (two to six answers, A-F, in order)
    CORRECT: A-F   (required - every bank question is graded)
    TAGS: comma, separated, tags   (optional)

A blank line always ends a block, so a paragraph break inside question or
answer text is written as a line holding a single backslash.

Example:

    Q: What is $2 + 2$?
    A: 3
    B: 4
    C: 5
    CORRECT: B
    TAGS: arithmetic, basics
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from examforge.constants.assessment_constants import ANSWER_LETTERS, MIN_ANSWERS
from examforge.core.errors import ValidationError
from examforge.core.models import AnswerInput, QuestionInput
from examforge.core.validation import validate_question_input

PARAGRAPH_BREAK = "\\"


class QuestionImportError(ValidationError):
    """Raised when a question file cannot be parsed."""


@dataclass(slots=True)
class ImportedQuestions:
    """Container for imported questions and where they came from."""

    source: str
    questions: list[QuestionInput]


def load_questions_from_file(file_path: Path) -> ImportedQuestions:
    text = file_path.read_text(encoding="utf-8")
    return ImportedQuestions(source=str(file_path), questions=parse_questions_text(text))


def parse_questions_text(text: str) -> list[QuestionInput]:
    """Parse and validate every block; one bad block rejects the whole document."""
    questions: list[QuestionInput] = []
    for number, block in enumerate(_split_blocks(text), start=1):
        try:
            questions.append(validate_question_input(_parse_block(block)))
        except ValidationError as exc:
            raise QuestionImportError(f"Question {number}: {exc.message}") from exc
    if not questions:
        raise QuestionImportError("Question file did not contain any questions.")
    return questions


def _split_blocks(text: str) -> list[str]:
    blocks: list[str] = []
    current_block: list[str] = []
    for raw_line in text.splitlines():
        stripped = raw_line.strip()
        if stripped == "---":
            if current_block:
                blocks.append("\n".join(current_block).strip())
                current_block = []
            continue
        if stripped:
            current_block.append(raw_line)
        elif current_block:
            # Blank line encountered after content - finalize current block
            blocks.append("\n".join(current_block).strip())
            current_block = []
    if current_block:
        blocks.append("\n".join(current_block).strip())
    return [block for block in blocks if block]


def _parse_block(block: str) -> QuestionInput:
    question_lines: list[str] = []
    answers: dict[str, str] = {}
    correct_letter: str | None = None
    tags: list[str] = []
    current_section: str | None = None

    for raw_line in block.splitlines():
        line = raw_line.strip()
        if not line:
            continue

        upper = line.upper()
        if upper.startswith("Q:"):
            question_lines = [line[2:].strip()]
            current_section = "Q"
            continue

        if upper.startswith("CORRECT:"):
            correct_letter = line.split(":", 1)[1].strip().upper()
            current_section = None
            continue

        if upper.startswith("TAGS:"):
            tags = [tag.strip() for tag in line.split(":", 1)[1].split(",")]
            current_section = None
            continue

        if len(line) > 2 and line[0].upper() in ANSWER_LETTERS and line[1] == ":":
            letter = line[0].upper()
            if letter in answers:
                raise QuestionImportError(f"Answer {letter} is defined twice.")
            answers[letter] = line[2:].strip()
            current_section = letter
            continue

        content = "" if line == PARAGRAPH_BREAK else line
        if current_section == "Q":
            question_lines.append(content)
        elif current_section in ANSWER_LETTERS:
            answers[current_section] = answers[current_section] + f"\n{content}"
        else:
            raise QuestionImportError(
                f"Encountered text outside of a known section: '{line}'."
            )

    if not question_lines:
        raise QuestionImportError("Question text missing (Q: ...)")

    letters = ANSWER_LETTERS[: len(answers)]
    if len(answers) < MIN_ANSWERS or sorted(answers) != list(letters):
        raise QuestionImportError(
            "Answers must be consecutive letters starting at A "
            f"(got {', '.join(sorted(answers)) or 'none'})."
        )

    if correct_letter is None:
        raise QuestionImportError("CORRECT line missing.")
    if correct_letter not in letters:
        raise QuestionImportError(f"CORRECT must be one of {', '.join(letters)}.")

    return QuestionInput(
        text="\n".join(question_lines).strip(),
        answers=[
            AnswerInput(text=answers[letter].strip(), is_correct=letter == correct_letter)
            for letter in letters
        ],
        tags=tags,
    )
