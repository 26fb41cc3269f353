"""Service for grouping bank questions into named pools."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Literal
from uuid import uuid4

from examforge.core.errors import ConflictError, NotFoundError, ValidationError
from examforge.core.models import PoolInput, QuestionPool
from examforge.core.services.question_bank import utc_now
from examforge.core.validation import validate_pool_input
from examforge.storage.repository import ExamRepository

logger = logging.getLogger(__name__)

PoolDeletePolicy = Literal["cascade", "block"]


class PoolManager:
    """Creates, edits and deletes pools and keeps templates consistent on delete."""

    def __init__(
        self,
        repository: ExamRepository,
        delete_policy: PoolDeletePolicy = "cascade",
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        self._repository = repository
        self._delete_policy = delete_policy
        self._now = now

    def create_pool(self, owner_id: str, data: PoolInput) -> QuestionPool:
        cleaned = validate_pool_input(data)
        self._ensure_unique_name(owner_id, cleaned.name)
        self._ensure_questions_owned(owner_id, cleaned.question_ids)
        timestamp = self._now()
        pool = QuestionPool(
            id=uuid4().hex,
            owner_id=owner_id,
            name=cleaned.name,
            description=cleaned.description,
            question_ids=cleaned.question_ids,
            created_at=timestamp,
            updated_at=timestamp,
        )
        return self._repository.save_pool(pool)

    def get_pool(self, owner_id: str, pool_id: str) -> QuestionPool:
        pool = self._repository.get_pool(pool_id)
        if pool is None or pool.owner_id != owner_id:
            raise NotFoundError(f"Pool {pool_id} not found.")
        return pool

    def list_pools(self, owner_id: str) -> list[QuestionPool]:
        return self._repository.list_pools(owner_id)

    def update_pool(
        self,
        owner_id: str,
        pool_id: str,
        name: str,
        description: str | None = None,
    ) -> QuestionPool:
        pool = self.get_pool(owner_id, pool_id)
        cleaned = validate_pool_input(PoolInput(name=name, description=description))
        if cleaned.name != pool.name:
            self._ensure_unique_name(owner_id, cleaned.name, exclude_id=pool.id)
        pool.name = cleaned.name
        pool.description = cleaned.description
        pool.updated_at = self._now()
        return self._repository.save_pool(pool)

    def add_questions(self, owner_id: str, pool_id: str, question_ids: list[str]) -> QuestionPool:
        pool = self.get_pool(owner_id, pool_id)
        if not question_ids:
            raise ValidationError("No question ids given.")
        if len(question_ids) != len(set(question_ids)):
            raise ValidationError("The same question was given more than once.")
        already = [qid for qid in question_ids if qid in pool.question_ids]
        if already:
            raise ConflictError(
                f"Question(s) already in pool '{pool.name}': {', '.join(already)}."
            )
        self._ensure_questions_owned(owner_id, question_ids)
        pool.question_ids.extend(question_ids)
        pool.updated_at = self._now()
        return self._repository.save_pool(pool)

    def remove_question(self, owner_id: str, pool_id: str, question_id: str) -> QuestionPool:
        pool = self.get_pool(owner_id, pool_id)
        if question_id not in pool.question_ids:
            raise NotFoundError(f"Question {question_id} is not in pool '{pool.name}'.")
        pool.question_ids.remove(question_id)
        pool.updated_at = self._now()
        return self._repository.save_pool(pool)

    def delete_pool(self, owner_id: str, pool_id: str) -> list[str]:
        """Delete a pool and return the ids of templates that were edited."""
        pool = self.get_pool(owner_id, pool_id)
        templates = self._repository.find_templates_with_pool(pool_id)
        if templates and self._delete_policy == "block":
            names = ", ".join(sorted(t.name for t in templates))
            raise ConflictError(f"Pool '{pool.name}' is used by template(s): {names}.")

        for template in templates:
            template.pool_selections = [
                s for s in template.pool_selections if s.pool_id != pool_id
            ]
            template.updated_at = self._now()
            self._repository.save_template(template)
        self._repository.delete_pool(pool_id)
        logger.info(
            "Deleted pool %s; removed it from %d template(s)", pool_id, len(templates)
        )
        return [t.id for t in templates]

    def _ensure_unique_name(self, owner_id: str, name: str, exclude_id: str | None = None) -> None:
        lowered = name.lower()
        for pool in self._repository.list_pools(owner_id):
            if pool.id != exclude_id and pool.name.lower() == lowered:
                raise ConflictError(f"A pool named '{name}' already exists.")

    def _ensure_questions_owned(self, owner_id: str, question_ids: list[str]) -> None:
        for question_id in question_ids:
            question = self._repository.get_question(question_id)
            if question is None or question.owner_id != owner_id:
                raise ValidationError(f"Question {question_id} does not exist.")
