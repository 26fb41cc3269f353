"""Service for composing test templates out of pool selections."""

from __future__ import annotations

from datetime import datetime
from typing import Callable
from uuid import uuid4

from examforge.core.errors import ConflictError, NotFoundError
from examforge.core.models import QuestionPool, TemplateInput, TestTemplate
from examforge.core.services.question_bank import utc_now
from examforge.core.validation import validate_draw_counts, validate_template_input
from examforge.storage.repository import ExamRepository


class TemplateDesigner:
    """Validates templates against the current pools when they are saved."""

    def __init__(
        self,
        repository: ExamRepository,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        self._repository = repository
        self._now = now

    def create_template(self, owner_id: str, data: TemplateInput) -> TestTemplate:
        cleaned = self._validate(owner_id, data)
        self._ensure_unique_name(owner_id, cleaned.name)
        timestamp = self._now()
        template = TestTemplate(
            id=uuid4().hex,
            owner_id=owner_id,
            name=cleaned.name,
            description=cleaned.description,
            pool_selections=cleaned.pool_selections,
            created_at=timestamp,
            updated_at=timestamp,
        )
        return self._repository.save_template(template)

    def get_template(self, owner_id: str, template_id: str) -> TestTemplate:
        template = self._repository.get_template(template_id)
        if template is None or template.owner_id != owner_id:
            raise NotFoundError(f"Template {template_id} not found.")
        return template

    def list_templates(self, owner_id: str) -> list[TestTemplate]:
        return self._repository.list_templates(owner_id)

    def update_template(self, owner_id: str, template_id: str, data: TemplateInput) -> TestTemplate:
        existing = self.get_template(owner_id, template_id)
        cleaned = self._validate(owner_id, data)
        if cleaned.name.lower() != existing.name.lower():
            self._ensure_unique_name(owner_id, cleaned.name, exclude_id=existing.id)
        updated = TestTemplate(
            id=existing.id,
            owner_id=existing.owner_id,
            name=cleaned.name,
            description=cleaned.description,
            pool_selections=cleaned.pool_selections,
            created_at=existing.created_at,
            updated_at=self._now(),
        )
        return self._repository.save_template(updated)

    def delete_template(self, owner_id: str, template_id: str) -> None:
        self.get_template(owner_id, template_id)
        self._repository.delete_template(template_id)

    def pools_for(self, owner_id: str, template: TestTemplate) -> dict[str, QuestionPool]:
        """Load the owner's pools referenced by ``template`` keyed by id."""
        pools: dict[str, QuestionPool] = {}
        for selection in template.pool_selections:
            pool = self._repository.get_pool(selection.pool_id)
            if pool is not None and pool.owner_id == owner_id:
                pools[pool.id] = pool
        return pools

    def _validate(self, owner_id: str, data: TemplateInput) -> TemplateInput:
        cleaned = validate_template_input(data)
        draft = TestTemplate(
            id="", owner_id=owner_id, name=cleaned.name, pool_selections=cleaned.pool_selections
        )
        validate_draw_counts(cleaned.pool_selections, self.pools_for(owner_id, draft))
        return cleaned

    def _ensure_unique_name(self, owner_id: str, name: str, exclude_id: str | None = None) -> None:
        lowered = name.lower()
        for template in self._repository.list_templates(owner_id):
            if template.id != exclude_id and template.name.lower() == lowered:
                raise ConflictError(f"A template named '{name}' already exists.")
