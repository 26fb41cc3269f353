"""Business logic shared by every examiner and participant entry point."""

from __future__ import annotations

import logging
import random
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable

from examforge.constants.assessment_constants import (
    DEFAULT_ACCESS_CODE_LENGTH,
    DEFAULT_MAX_PRESENTED_ANSWERS,
)
from examforge.core.access_codes import AccessCodeGenerator
from examforge.core.config import Settings
from examforge.core.models import (
    ParticipantInstance,
    PoolInput,
    Question,
    QuestionInput,
    QuestionPool,
    SessionLaunchInput,
    SubmittedAnswer,
    TemplateInput,
    TestSession,
    TestTemplate,
)
from examforge.core.question_exporter import serialize_questions
from examforge.core.question_importer import load_questions_from_file, parse_questions_text
from examforge.core.services.pool_manager import PoolDeletePolicy, PoolManager
from examforge.core.services.question_bank import QuestionBank, utc_now
from examforge.core.services.session_assembler import ParticipantTestView, SessionAssembler
from examforge.core.services.session_manager import SessionManager
from examforge.core.services.session_report import (
    ParticipantDetail,
    ParticipantSummary,
    SessionReport,
    SessionReporter,
)
from examforge.core.services.template_designer import TemplateDesigner
from examforge.storage.repository import ExamRepository

logger = logging.getLogger(__name__)


class ExamManager:
    """Facade for exam services: QuestionBank, Pools, Templates, Sessions and Reports."""

    def __init__(
        self,
        repository: ExamRepository,
        rng: random.Random | None = None,
        shuffle_answers: bool = True,
        max_presented_answers: int | None = DEFAULT_MAX_PRESENTED_ANSWERS,
        access_code_length: int = DEFAULT_ACCESS_CODE_LENGTH,
        pool_delete_policy: PoolDeletePolicy = "cascade",
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        self._repository = repository

        # Services
        self._questions = QuestionBank(repository, now=now)
        self._pools = PoolManager(repository, delete_policy=pool_delete_policy, now=now)
        self._templates = TemplateDesigner(repository, now=now)
        self._assembler = SessionAssembler(
            rng=rng,
            shuffle_answers=shuffle_answers,
            max_presented_answers=max_presented_answers,
        )
        self._sessions = SessionManager(
            repository,
            templates=self._templates,
            assembler=self._assembler,
            code_generator=AccessCodeGenerator(
                repository.access_code_exists, length=access_code_length
            ),
            now=now,
        )
        self._reporter = SessionReporter(now=now)

    @classmethod
    def from_settings(cls, repository: ExamRepository, settings: Settings) -> "ExamManager":
        rng = random.Random(settings.draw_seed) if settings.draw_seed is not None else None
        return cls(
            repository,
            rng=rng,
            shuffle_answers=settings.shuffle_answers,
            max_presented_answers=settings.max_presented_answers,
            access_code_length=settings.access_code_length,
            pool_delete_policy=settings.pool_delete_policy,
        )

    # --- Question Bank Delegation ---

    def create_question(self, owner_id: str, data: QuestionInput) -> Question:
        question = self._questions.create_question(owner_id, data)
        logger.info("Examiner %s created question %s", owner_id, question.id)
        return question

    def get_question(self, owner_id: str, question_id: str) -> Question:
        return self._questions.get_question(owner_id, question_id)

    def list_questions(
        self,
        owner_id: str,
        tags: list[str] | None = None,
        search: str | None = None,
    ) -> list[Question]:
        return self._questions.list_questions(owner_id, tags=tags, search=search)

    def list_tags(self, owner_id: str) -> list[str]:
        return self._questions.list_tags(owner_id)

    def update_question(self, owner_id: str, question_id: str, data: QuestionInput) -> Question:
        return self._questions.update_question(owner_id, question_id, data)

    def delete_question(self, owner_id: str, question_id: str) -> None:
        self._questions.delete_question(owner_id, question_id)

    def import_questions(self, owner_id: str, text: str) -> list[Question]:
        """Parse the text import format and store every question, or none."""
        parsed = parse_questions_text(text)
        questions = self._questions.create_questions(owner_id, parsed)
        logger.info("Examiner %s imported %d question(s)", owner_id, len(questions))
        return questions

    def import_questions_from_file(self, owner_id: str, file_path: Path) -> list[Question]:
        imported = load_questions_from_file(file_path)
        questions = self._questions.create_questions(owner_id, imported.questions)
        logger.info("Loaded %d question(s) from %s", len(questions), imported.source)
        return questions

    def export_questions(self, owner_id: str, tags: list[str] | None = None) -> str:
        return serialize_questions(self._questions.list_questions(owner_id, tags=tags))

    # --- Pool Delegation ---

    def create_pool(self, owner_id: str, data: PoolInput) -> QuestionPool:
        return self._pools.create_pool(owner_id, data)

    def get_pool(self, owner_id: str, pool_id: str) -> QuestionPool:
        return self._pools.get_pool(owner_id, pool_id)

    def list_pools(self, owner_id: str) -> list[QuestionPool]:
        return self._pools.list_pools(owner_id)

    def update_pool(
        self, owner_id: str, pool_id: str, name: str, description: str | None = None
    ) -> QuestionPool:
        return self._pools.update_pool(owner_id, pool_id, name, description)

    def add_questions_to_pool(
        self, owner_id: str, pool_id: str, question_ids: list[str]
    ) -> QuestionPool:
        return self._pools.add_questions(owner_id, pool_id, question_ids)

    def remove_question_from_pool(
        self, owner_id: str, pool_id: str, question_id: str
    ) -> QuestionPool:
        return self._pools.remove_question(owner_id, pool_id, question_id)

    def delete_pool(self, owner_id: str, pool_id: str) -> list[str]:
        return self._pools.delete_pool(owner_id, pool_id)

    # --- Template Delegation ---

    def create_template(self, owner_id: str, data: TemplateInput) -> TestTemplate:
        return self._templates.create_template(owner_id, data)

    def get_template(self, owner_id: str, template_id: str) -> TestTemplate:
        return self._templates.get_template(owner_id, template_id)

    def list_templates(self, owner_id: str) -> list[TestTemplate]:
        return self._templates.list_templates(owner_id)

    def update_template(
        self, owner_id: str, template_id: str, data: TemplateInput
    ) -> TestTemplate:
        return self._templates.update_template(owner_id, template_id, data)

    def delete_template(self, owner_id: str, template_id: str) -> None:
        self._templates.delete_template(owner_id, template_id)

    # --- Session Delegation ---

    def launch_session(
        self, owner_id: str, data: SessionLaunchInput
    ) -> tuple[TestSession, list[ParticipantInstance]]:
        return self._sessions.launch_session(owner_id, data)

    def list_sessions(self, owner_id: str) -> list[TestSession]:
        return self._sessions.list_sessions(owner_id)

    def get_session(self, owner_id: str, session_id: str) -> TestSession:
        return self._sessions.get_session(owner_id, session_id)

    def list_participants(self, owner_id: str, session_id: str) -> list[ParticipantInstance]:
        return self._sessions.list_participants(owner_id, session_id)

    def close_session(self, owner_id: str, session_id: str) -> TestSession:
        return self._sessions.close_session(owner_id, session_id)

    def cancel_session(self, owner_id: str, session_id: str) -> TestSession:
        return self._sessions.cancel_session(owner_id, session_id)

    # --- Participant Delegation ---

    def redeem_access_code(self, access_code: str) -> ParticipantTestView:
        return self._sessions.redeem_access_code(access_code)

    def get_test_instance(self, access_code: str) -> ParticipantTestView:
        return self._sessions.get_test_instance(access_code)

    def submit_answers(
        self, access_code: str, answers: Iterable[SubmittedAnswer]
    ) -> ParticipantInstance:
        return self._sessions.submit_answers(access_code, answers)

    # --- Reports ---

    def get_session_report(self, owner_id: str, session_id: str) -> SessionReport:
        session = self._sessions.get_session(owner_id, session_id)
        instances = self._repository.list_instances(session.id)
        return self._reporter.build_report(session, instances)

    def get_participant_detail(
        self, owner_id: str, session_id: str, participant_id: str
    ) -> ParticipantDetail:
        instance = self._sessions.get_participant(owner_id, session_id, participant_id)
        return self._reporter.participant_detail(instance)

    def summarize_participants(
        self, instances: list[ParticipantInstance]
    ) -> list[ParticipantSummary]:
        return [self._reporter.summarize(i) for i in instances]
