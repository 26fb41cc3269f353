"""Persistence interface consumed by the services."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from examforge.core.models import (
    ParticipantInstance,
    ParticipantStatus,
    Question,
    QuestionPool,
    TestSession,
    TestTemplate,
)


class ExamRepository(ABC):
    """Create/read/update/delete by id plus owner-scoped queries.

    Implementations return detached copies: mutating a returned record has no
    effect until it is passed back to a ``save_*`` method.
    """

    # --- Questions ---

    @abstractmethod
    def save_question(self, question: Question) -> Question: ...

    @abstractmethod
    def get_question(self, question_id: str) -> Question | None: ...

    @abstractmethod
    def list_questions(self, owner_id: str) -> list[Question]: ...

    @abstractmethod
    def delete_question(self, question_id: str) -> bool: ...

    # --- Pools ---

    @abstractmethod
    def save_pool(self, pool: QuestionPool) -> QuestionPool: ...

    @abstractmethod
    def get_pool(self, pool_id: str) -> QuestionPool | None: ...

    @abstractmethod
    def list_pools(self, owner_id: str) -> list[QuestionPool]: ...

    @abstractmethod
    def delete_pool(self, pool_id: str) -> bool: ...

    @abstractmethod
    def find_pools_with_question(self, question_id: str) -> list[QuestionPool]: ...

    # --- Templates ---

    @abstractmethod
    def save_template(self, template: TestTemplate) -> TestTemplate: ...

    @abstractmethod
    def get_template(self, template_id: str) -> TestTemplate | None: ...

    @abstractmethod
    def list_templates(self, owner_id: str) -> list[TestTemplate]: ...

    @abstractmethod
    def delete_template(self, template_id: str) -> bool: ...

    @abstractmethod
    def find_templates_with_pool(self, pool_id: str) -> list[TestTemplate]: ...

    # --- Sessions ---

    @abstractmethod
    def create_session(
        self, session: TestSession, instances: list[ParticipantInstance]
    ) -> TestSession:
        """Insert a newly launched session together with all of its instances.

        Either everything is written or nothing is; a clashing access code
        raises ConflictError and leaves no trace of the session.
        """

    @abstractmethod
    def save_session(self, session: TestSession) -> TestSession: ...

    @abstractmethod
    def get_session(self, session_id: str) -> TestSession | None: ...

    @abstractmethod
    def list_sessions(self, owner_id: str) -> list[TestSession]: ...

    # --- Participant instances ---

    @abstractmethod
    def get_instance(self, instance_id: str) -> ParticipantInstance | None: ...

    @abstractmethod
    def get_instance_by_access_code(self, access_code: str) -> ParticipantInstance | None: ...

    @abstractmethod
    def list_instances(self, session_id: str) -> list[ParticipantInstance]: ...

    @abstractmethod
    def access_code_exists(self, access_code: str) -> bool: ...

    @abstractmethod
    def transition_instance(
        self,
        instance_id: str,
        expected_status: ParticipantStatus,
        changes: dict[str, Any],
    ) -> bool:
        """Apply ``changes`` only if the instance is still in ``expected_status``.

        Returns False when the instance is missing or its status has moved on,
        which is how double redemption and double submission are refused.
        """
