"""Map-backed store used by tests and local development."""

from __future__ import annotations

from copy import deepcopy
from threading import Lock
from typing import Any, TypeVar

from examforge.core.errors import ConflictError
from examforge.core.models import (
    ParticipantInstance,
    ParticipantStatus,
    Question,
    QuestionPool,
    TestSession,
    TestTemplate,
)
from examforge.storage.repository import ExamRepository

_T = TypeVar("_T")


class MemoryExamRepository(ExamRepository):
    """Keeps every record in dictionaries guarded by a single lock."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._questions: dict[str, Question] = {}
        self._pools: dict[str, QuestionPool] = {}
        self._templates: dict[str, TestTemplate] = {}
        self._sessions: dict[str, TestSession] = {}
        self._instances: dict[str, ParticipantInstance] = {}
        self._codes: dict[str, str] = {}

    # --- Questions ---

    def save_question(self, question: Question) -> Question:
        return self._put(self._questions, question.id, question)

    def get_question(self, question_id: str) -> Question | None:
        return self._get(self._questions, question_id)

    def list_questions(self, owner_id: str) -> list[Question]:
        return self._owned(self._questions, owner_id)

    def delete_question(self, question_id: str) -> bool:
        return self._pop(self._questions, question_id)

    # --- Pools ---

    def save_pool(self, pool: QuestionPool) -> QuestionPool:
        return self._put(self._pools, pool.id, pool)

    def get_pool(self, pool_id: str) -> QuestionPool | None:
        return self._get(self._pools, pool_id)

    def list_pools(self, owner_id: str) -> list[QuestionPool]:
        return self._owned(self._pools, owner_id)

    def delete_pool(self, pool_id: str) -> bool:
        return self._pop(self._pools, pool_id)

    def find_pools_with_question(self, question_id: str) -> list[QuestionPool]:
        with self._lock:
            return [deepcopy(p) for p in self._pools.values() if question_id in p.question_ids]

    # --- Templates ---

    def save_template(self, template: TestTemplate) -> TestTemplate:
        return self._put(self._templates, template.id, template)

    def get_template(self, template_id: str) -> TestTemplate | None:
        return self._get(self._templates, template_id)

    def list_templates(self, owner_id: str) -> list[TestTemplate]:
        return self._owned(self._templates, owner_id)

    def delete_template(self, template_id: str) -> bool:
        return self._pop(self._templates, template_id)

    def find_templates_with_pool(self, pool_id: str) -> list[TestTemplate]:
        with self._lock:
            return [
                deepcopy(t)
                for t in self._templates.values()
                if any(s.pool_id == pool_id for s in t.pool_selections)
            ]

    # --- Sessions ---

    def create_session(
        self, session: TestSession, instances: list[ParticipantInstance]
    ) -> TestSession:
        with self._lock:
            codes = [instance.access_code for instance in instances]
            if len(codes) != len(set(codes)) or any(code in self._codes for code in codes):
                raise ConflictError("An access code of this session is already in use.")
            self._sessions[session.id] = deepcopy(session)
            for instance in instances:
                self._instances[instance.id] = deepcopy(instance)
                self._codes[instance.access_code] = instance.id
            return deepcopy(session)

    def save_session(self, session: TestSession) -> TestSession:
        return self._put(self._sessions, session.id, session)

    def get_session(self, session_id: str) -> TestSession | None:
        return self._get(self._sessions, session_id)

    def list_sessions(self, owner_id: str) -> list[TestSession]:
        return self._owned(self._sessions, owner_id)

    # --- Participant instances ---

    def get_instance(self, instance_id: str) -> ParticipantInstance | None:
        return self._get(self._instances, instance_id)

    def get_instance_by_access_code(self, access_code: str) -> ParticipantInstance | None:
        with self._lock:
            instance_id = self._codes.get(access_code)
            if instance_id is None:
                return None
            return deepcopy(self._instances[instance_id])

    def list_instances(self, session_id: str) -> list[ParticipantInstance]:
        with self._lock:
            return [
                deepcopy(i)
                for i in sorted(self._instances.values(), key=_created_key)
                if i.session_id == session_id
            ]

    def access_code_exists(self, access_code: str) -> bool:
        with self._lock:
            return access_code in self._codes

    def transition_instance(
        self,
        instance_id: str,
        expected_status: ParticipantStatus,
        changes: dict[str, Any],
    ) -> bool:
        with self._lock:
            instance = self._instances.get(instance_id)
            if instance is None or instance.status != expected_status:
                return False
            for key, value in changes.items():
                setattr(instance, key, deepcopy(value))
            return True

    # --- Helpers ---

    def _put(self, table: dict[str, _T], key: str, record: _T) -> _T:
        with self._lock:
            table[key] = deepcopy(record)
            return deepcopy(record)

    def _get(self, table: dict[str, _T], key: str) -> _T | None:
        with self._lock:
            record = table.get(key)
            return deepcopy(record) if record is not None else None

    def _pop(self, table: dict[str, Any], key: str) -> bool:
        with self._lock:
            return table.pop(key, None) is not None

    def _owned(self, table: dict[str, Any], owner_id: str) -> list:
        with self._lock:
            return [
                deepcopy(r)
                for r in sorted(table.values(), key=_created_key)
                if r.owner_id == owner_id
            ]


def _created_key(record: Any):
    # Records created in the same tick keep insertion order (sorted is stable).
    created = getattr(record, "created_at", None)
    return (created is None, created.timestamp() if created else 0.0)
