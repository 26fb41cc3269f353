"""Service for managing an examiner's bank of questions."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable
from uuid import uuid4

from examforge.core.errors import ConflictError, NotFoundError
from examforge.core.models import Answer, Question, QuestionInput
from examforge.core.validation import validate_question_input
from examforge.storage.repository import ExamRepository

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class QuestionBank:
    """Manages the lifecycle and storage of bank questions."""

    def __init__(
        self,
        repository: ExamRepository,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        self._repository = repository
        self._now = now

    def create_question(self, owner_id: str, data: QuestionInput) -> Question:
        cleaned = validate_question_input(data)
        timestamp = self._now()
        question = Question(
            id=uuid4().hex,
            owner_id=owner_id,
            text=cleaned.text,
            answers=self._build_answers(cleaned),
            tags=cleaned.tags,
            created_at=timestamp,
            updated_at=timestamp,
        )
        return self._repository.save_question(question)

    def create_questions(self, owner_id: str, items: list[QuestionInput]) -> list[Question]:
        """Validate every item before storing any of them."""
        cleaned_items = [validate_question_input(item) for item in items]
        return [self.create_question(owner_id, item) for item in cleaned_items]

    def get_question(self, owner_id: str, question_id: str) -> Question:
        question = self._repository.get_question(question_id)
        if question is None or question.owner_id != owner_id:
            raise NotFoundError(f"Question {question_id} not found.")
        return question

    def list_questions(
        self,
        owner_id: str,
        tags: list[str] | None = None,
        search: str | None = None,
    ) -> list[Question]:
        """Return the owner's questions carrying all ``tags`` and containing ``search``."""
        questions = self._repository.list_questions(owner_id)
        wanted = {t.strip().lower() for t in tags or [] if t.strip()}
        if wanted:
            questions = [
                q for q in questions if wanted.issubset({t.lower() for t in q.tags})
            ]
        needle = (search or "").strip().lower()
        if needle:
            questions = [q for q in questions if needle in q.text.lower()]
        return questions

    def list_tags(self, owner_id: str) -> list[str]:
        tags: set[str] = set()
        for question in self._repository.list_questions(owner_id):
            tags.update(question.tags)
        return sorted(tags, key=str.lower)

    def update_question(self, owner_id: str, question_id: str, data: QuestionInput) -> Question:
        existing = self.get_question(owner_id, question_id)
        cleaned = validate_question_input(data)
        # Preserve the original id and creation time
        updated = Question(
            id=existing.id,
            owner_id=existing.owner_id,
            text=cleaned.text,
            answers=self._build_answers(cleaned),
            tags=cleaned.tags,
            created_at=existing.created_at,
            updated_at=self._now(),
        )
        return self._repository.save_question(updated)

    def delete_question(self, owner_id: str, question_id: str) -> None:
        self.get_question(owner_id, question_id)
        pools = self._repository.find_pools_with_question(question_id)
        if pools:
            names = ", ".join(sorted(p.name for p in pools))
            raise ConflictError(
                f"Question {question_id} is used by pool(s): {names}. Remove it from them first."
            )
        self._repository.delete_question(question_id)
        logger.info("Deleted question %s of examiner %s", question_id, owner_id)

    @staticmethod
    def _build_answers(data: QuestionInput) -> list[Answer]:
        return [
            Answer(id=answer.id or uuid4().hex, text=answer.text, is_correct=answer.is_correct)
            for answer in data.answers
        ]
