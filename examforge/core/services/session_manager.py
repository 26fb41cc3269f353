"""Service for launching test sessions and driving the access-code lifecycle."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Iterable
from uuid import uuid4

from examforge.core.access_codes import AccessCodeGenerator, normalize_access_code
from examforge.core.errors import ConflictError, NotFoundError, ValidationError
from examforge.core.models import (
    ParticipantInstance,
    Question,
    SessionLaunchInput,
    SubmittedAnswer,
    TestSession,
)
from examforge.core.services.question_bank import utc_now
from examforge.core.services.scoring import score_instance
from examforge.core.services.session_assembler import ParticipantTestView, SessionAssembler
from examforge.core.services.template_designer import TemplateDesigner
from examforge.core.validation import (
    validate_draw_counts,
    validate_session_launch,
    validate_submission,
)
from examforge.storage.repository import ExamRepository

logger = logging.getLogger(__name__)

OPEN_SESSION_STATES = frozenset({"active", "in_progress"})
FINISHED_INSTANCE_STATES = frozenset({"completed", "expired"})


class SessionManager:
    """Owns every state change of sessions and participant instances.

    Participant transitions are check-and-set operations in the store, so two
    concurrent redeems (or submits) of one code cannot both succeed.
    """

    def __init__(
        self,
        repository: ExamRepository,
        templates: TemplateDesigner,
        assembler: SessionAssembler,
        code_generator: AccessCodeGenerator,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        self._repository = repository
        self._templates = templates
        self._assembler = assembler
        self._codes = code_generator
        self._now = now

    # --- Examiner operations ---

    def launch_session(
        self, owner_id: str, data: SessionLaunchInput
    ) -> tuple[TestSession, list[ParticipantInstance]]:
        now = self._now()
        cleaned = validate_session_launch(data, now)
        template = self._templates.get_template(owner_id, cleaned.template_id)
        if not template.pool_selections:
            raise ValidationError(f"Template '{template.name}' has no pool selections.")
        pools = self._templates.pools_for(owner_id, template)
        # Pools may have shrunk since the template was saved
        validate_draw_counts(template.pool_selections, pools)
        questions = self._load_questions(q for p in pools.values() for q in p.question_ids)

        codes = self._codes.generate_batch(len(cleaned.participants))
        session = TestSession(
            id=uuid4().hex,
            template_id=template.id,
            template_name=template.name,
            owner_id=owner_id,
            time_limit_minutes=cleaned.time_limit_minutes,
            access_codes=codes,
            starts_at=cleaned.starts_at,
            ends_at=cleaned.ends_at,
            created_at=now,
            updated_at=now,
        )
        instances = [
            ParticipantInstance(
                id=uuid4().hex,
                session_id=session.id,
                access_code=code,
                identifier=identifier,
                sections=self._assembler.draw_sections(template, pools, questions),
                created_at=now,
            )
            for identifier, code in zip(cleaned.participants, codes)
        ]
        session = self._repository.create_session(session, instances)
        logger.info(
            "Launched session %s from template %s with %d participant(s)",
            session.id,
            template.id,
            len(instances),
        )
        return session, self._repository.list_instances(session.id)

    def list_sessions(self, owner_id: str) -> list[TestSession]:
        return [self._refresh(s) for s in self._repository.list_sessions(owner_id)]

    def get_session(self, owner_id: str, session_id: str) -> TestSession:
        session = self._repository.get_session(session_id)
        if session is None or session.owner_id != owner_id:
            raise NotFoundError(f"Session {session_id} not found.")
        return self._refresh(session)

    def list_participants(self, owner_id: str, session_id: str) -> list[ParticipantInstance]:
        self.get_session(owner_id, session_id)
        return self._repository.list_instances(session_id)

    def get_participant(
        self, owner_id: str, session_id: str, participant_id: str
    ) -> ParticipantInstance:
        self.get_session(owner_id, session_id)
        instance = self._repository.get_instance(participant_id)
        if instance is None or instance.session_id != session_id:
            raise NotFoundError(f"Participant {participant_id} not found in session {session_id}.")
        return instance

    def close_session(self, owner_id: str, session_id: str) -> TestSession:
        """Complete the session and expire every code that was never redeemed."""
        session = self.get_session(owner_id, session_id)
        if session.status not in OPEN_SESSION_STATES:
            raise ConflictError(f"Session {session_id} is already {session.status}.")
        expired = self._expire_unstarted(session.id)
        session = self._set_status(session, "completed")
        logger.info("Closed session %s; expired %d unused code(s)", session.id, expired)
        return session

    def cancel_session(self, owner_id: str, session_id: str) -> TestSession:
        session = self.get_session(owner_id, session_id)
        if session.status not in OPEN_SESSION_STATES:
            raise ConflictError(f"Session {session_id} is already {session.status}.")
        session = self._set_status(session, "cancelled")
        logger.info("Cancelled session %s", session.id)
        return session

    # --- Participant operations ---

    def redeem_access_code(self, access_code: str) -> ParticipantTestView:
        instance, session = self._lookup(access_code)
        if session.status not in OPEN_SESSION_STATES:
            logger.warning(
                "Refused redeem of %s: session %s is %s",
                instance.access_code,
                session.id,
                session.status,
            )
            raise ConflictError(f"This test session is {session.status}.")
        self._ensure_opened(session, instance)
        if instance.status != "not_started":
            logger.warning("Refused redeem of %s: code is %s", instance.access_code, instance.status)
            raise ConflictError("This access code has already been used.")

        changes = {"status": "in_progress", "started_at": self._now()}
        if not self._repository.transition_instance(instance.id, "not_started", changes):
            raise ConflictError("This access code has already been used.")
        if session.status == "active":
            session = self._set_status(session, "in_progress")
        logger.info("Access code %s redeemed for session %s", instance.access_code, session.id)
        return self._assembler.participant_view(self._reload(instance), session)

    def get_test_instance(self, access_code: str) -> ParticipantTestView:
        instance, session = self._lookup(access_code)
        if session.status not in OPEN_SESSION_STATES:
            raise ConflictError(f"This test session is {session.status}.")
        self._ensure_opened(session, instance)
        if instance.status != "in_progress":
            raise ConflictError(f"This test is {instance.status.replace('_', ' ')}.")
        return self._assembler.participant_view(instance, session)

    def submit_answers(
        self, access_code: str, answers: Iterable[SubmittedAnswer]
    ) -> ParticipantInstance:
        """Score and store the answers; a code can be submitted exactly once."""
        instance, session = self._lookup(access_code)
        if session.status not in OPEN_SESSION_STATES:
            logger.warning(
                "Refused submit of %s: session %s is %s",
                instance.access_code,
                session.id,
                session.status,
            )
            raise ConflictError(f"This test session is {session.status}.")
        if instance.status == "completed":
            raise ConflictError("Answers for this access code were already submitted.")
        if instance.status != "in_progress":
            raise ConflictError(f"This test is {instance.status.replace('_', ' ')}.")

        selected = validate_submission(instance, answers)
        result = score_instance(instance, selected)
        changes = {
            "status": "completed",
            "answers": selected,
            "completed_at": self._now(),
            "total_score": result.total_score,
            "max_score": result.max_score,
        }
        if not self._repository.transition_instance(instance.id, "in_progress", changes):
            logger.warning("Concurrent submit of %s rejected", instance.access_code)
            raise ConflictError("Answers for this access code were already submitted.")
        logger.info(
            "Access code %s submitted: %s/%s",
            instance.access_code,
            result.total_score,
            result.max_score,
        )
        self._refresh(session)
        return self._reload(instance)

    # --- Helpers ---

    def _ensure_opened(self, session: TestSession, instance: ParticipantInstance) -> None:
        if session.starts_at is not None and self._now() < session.starts_at:
            logger.warning(
                "Refused access of %s: session %s opens at %s",
                instance.access_code,
                session.id,
                session.starts_at.isoformat(),
            )
            raise ConflictError("This test session has not opened yet.")

    def _lookup(self, access_code: str) -> tuple[ParticipantInstance, TestSession]:
        code = normalize_access_code(access_code or "")
        instance = self._repository.get_instance_by_access_code(code) if code else None
        if instance is None:
            raise NotFoundError("Unknown access code.")
        session = self._repository.get_session(instance.session_id)
        if session is None:
            raise NotFoundError(f"Session {instance.session_id} not found.")
        session = self._refresh(session)
        return self._reload(instance), session

    def _refresh(self, session: TestSession) -> TestSession:
        """Apply time- and completion-driven status changes before a read."""
        if session.status not in OPEN_SESSION_STATES:
            return session
        if session.ends_at is not None and self._now() >= session.ends_at:
            expired = self._expire_unstarted(session.id)
            logger.info("Session %s passed its end time; expired %d code(s)", session.id, expired)
            return self._set_status(session, "expired")
        instances = self._repository.list_instances(session.id)
        if instances and all(i.status in FINISHED_INSTANCE_STATES for i in instances):
            return self._set_status(session, "completed")
        return session

    def _expire_unstarted(self, session_id: str) -> int:
        count = 0
        for instance in self._repository.list_instances(session_id):
            if instance.status == "not_started" and self._repository.transition_instance(
                instance.id, "not_started", {"status": "expired"}
            ):
                count += 1
        return count

    def _set_status(self, session: TestSession, status: str) -> TestSession:
        session.status = status
        session.updated_at = self._now()
        return self._repository.save_session(session)

    def _reload(self, instance: ParticipantInstance) -> ParticipantInstance:
        fresh = self._repository.get_instance(instance.id)
        if fresh is None:
            raise NotFoundError(f"Participant {instance.id} not found.")
        return fresh

    def _load_questions(self, question_ids: Iterable[str]) -> dict[str, Question]:
        questions: dict[str, Question] = {}
        for question_id in question_ids:
            if question_id in questions:
                continue
            question = self._repository.get_question(question_id)
            if question is not None:
                questions[question_id] = question
        return questions
