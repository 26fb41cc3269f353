"""SQLAlchemy-backed store for durable deployments."""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator

from sqlalchemy import (
    JSON,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    create_engine,
    select,
    update,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from examforge.core.errors import ConflictError
from examforge.core.models import (
    Answer,
    DrawnQuestion,
    DrawnSection,
    ParticipantInstance,
    ParticipantStatus,
    PoolSelection,
    Question,
    QuestionPool,
    TestSession,
    TestTemplate,
)
from examforge.core.validation import as_utc
from examforge.storage.repository import ExamRepository


class Base(DeclarativeBase):
    pass


class QuestionRow(Base):
    __tablename__ = "questions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(255), index=True)
    text: Mapped[str] = mapped_column(Text)
    answers: Mapped[list] = mapped_column(JSON)
    tags: Mapped[list] = mapped_column(JSON)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class PoolRow(Base):
    __tablename__ = "question_pools"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(255), index=True)
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    question_ids: Mapped[list] = mapped_column(JSON)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class TemplateRow(Base):
    __tablename__ = "test_templates"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(255), index=True)
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    pool_selections: Mapped[list] = mapped_column(JSON)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class SessionRow(Base):
    __tablename__ = "test_sessions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    template_id: Mapped[str] = mapped_column(String(64))
    template_name: Mapped[str] = mapped_column(String(255))
    owner_id: Mapped[str] = mapped_column(String(255), index=True)
    time_limit_minutes: Mapped[int] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(String(20))
    access_codes: Mapped[list] = mapped_column(JSON)
    starts_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    ends_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class InstanceRow(Base):
    __tablename__ = "participant_instances"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    session_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("test_sessions.id"), index=True
    )
    access_code: Mapped[str] = mapped_column(String(32), unique=True)
    identifier: Mapped[str] = mapped_column(String(255))
    sections: Mapped[list] = mapped_column(JSON)
    status: Mapped[str] = mapped_column(String(20))
    answers: Mapped[dict] = mapped_column(JSON)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    total_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    max_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine; in-memory SQLite shares one connection across threads."""
    if database_url.startswith("sqlite"):
        kwargs: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, echo=echo, future=True, **kwargs)
    return create_engine(database_url, echo=echo, future=True, pool_pre_ping=True)


class SqlExamRepository(ExamRepository):
    """Stores records in relational tables with JSON columns for nested lists."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._sessionmaker = sessionmaker(
            bind=engine,
            autocommit=False,
            autoflush=False,
            future=True,
        )
        Base.metadata.create_all(engine)

    @classmethod
    def from_url(cls, database_url: str, echo: bool = False) -> "SqlExamRepository":
        return cls(build_engine(database_url, echo=echo))

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self._sessionmaker()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    # --- Questions ---

    def save_question(self, question: Question) -> Question:
        with self._session() as db:
            db.merge(
                QuestionRow(
                    id=question.id,
                    owner_id=question.owner_id,
                    text=question.text,
                    answers=[_answer_to_json(a) for a in question.answers],
                    tags=list(question.tags),
                    created_at=question.created_at,
                    updated_at=question.updated_at,
                )
            )
        return question

    def get_question(self, question_id: str) -> Question | None:
        with self._session() as db:
            row = db.get(QuestionRow, question_id)
            return _question_from_row(row) if row else None

    def list_questions(self, owner_id: str) -> list[Question]:
        with self._session() as db:
            rows = db.scalars(
                select(QuestionRow)
                .where(QuestionRow.owner_id == owner_id)
                .order_by(QuestionRow.created_at)
            ).all()
            return [_question_from_row(r) for r in rows]

    def delete_question(self, question_id: str) -> bool:
        return self._delete(QuestionRow, question_id)

    # --- Pools ---

    def save_pool(self, pool: QuestionPool) -> QuestionPool:
        with self._session() as db:
            db.merge(
                PoolRow(
                    id=pool.id,
                    owner_id=pool.owner_id,
                    name=pool.name,
                    description=pool.description,
                    question_ids=list(pool.question_ids),
                    created_at=pool.created_at,
                    updated_at=pool.updated_at,
                )
            )
        return pool

    def get_pool(self, pool_id: str) -> QuestionPool | None:
        with self._session() as db:
            row = db.get(PoolRow, pool_id)
            return _pool_from_row(row) if row else None

    def list_pools(self, owner_id: str) -> list[QuestionPool]:
        with self._session() as db:
            rows = db.scalars(
                select(PoolRow).where(PoolRow.owner_id == owner_id).order_by(PoolRow.created_at)
            ).all()
            return [_pool_from_row(r) for r in rows]

    def delete_pool(self, pool_id: str) -> bool:
        return self._delete(PoolRow, pool_id)

    def find_pools_with_question(self, question_id: str) -> list[QuestionPool]:
        # JSON containment differs per dialect, so membership is checked in Python.
        with self._session() as db:
            rows = db.scalars(select(PoolRow).order_by(PoolRow.created_at)).all()
            return [_pool_from_row(r) for r in rows if question_id in (r.question_ids or [])]

    # --- Templates ---

    def save_template(self, template: TestTemplate) -> TestTemplate:
        with self._session() as db:
            db.merge(
                TemplateRow(
                    id=template.id,
                    owner_id=template.owner_id,
                    name=template.name,
                    description=template.description,
                    pool_selections=[_selection_to_json(s) for s in template.pool_selections],
                    created_at=template.created_at,
                    updated_at=template.updated_at,
                )
            )
        return template

    def get_template(self, template_id: str) -> TestTemplate | None:
        with self._session() as db:
            row = db.get(TemplateRow, template_id)
            return _template_from_row(row) if row else None

    def list_templates(self, owner_id: str) -> list[TestTemplate]:
        with self._session() as db:
            rows = db.scalars(
                select(TemplateRow)
                .where(TemplateRow.owner_id == owner_id)
                .order_by(TemplateRow.created_at)
            ).all()
            return [_template_from_row(r) for r in rows]

    def delete_template(self, template_id: str) -> bool:
        return self._delete(TemplateRow, template_id)

    def find_templates_with_pool(self, pool_id: str) -> list[TestTemplate]:
        with self._session() as db:
            rows = db.scalars(select(TemplateRow).order_by(TemplateRow.created_at)).all()
            return [
                _template_from_row(r)
                for r in rows
                if any(s.get("pool_id") == pool_id for s in (r.pool_selections or []))
            ]

    # --- Sessions ---

    def create_session(
        self, session: TestSession, instances: list[ParticipantInstance]
    ) -> TestSession:
        try:
            with self._session() as db:
                db.add(_session_to_row(session))
                # The session row must exist before instances reference it
                db.flush()
                db.add_all(_instance_to_row(instance) for instance in instances)
        except IntegrityError as exc:
            raise ConflictError("An access code of this session is already in use.") from exc
        return session

    def save_session(self, session: TestSession) -> TestSession:
        with self._session() as db:
            db.merge(_session_to_row(session))
        return session

    def get_session(self, session_id: str) -> TestSession | None:
        with self._session() as db:
            row = db.get(SessionRow, session_id)
            return _session_from_row(row) if row else None

    def list_sessions(self, owner_id: str) -> list[TestSession]:
        with self._session() as db:
            rows = db.scalars(
                select(SessionRow)
                .where(SessionRow.owner_id == owner_id)
                .order_by(SessionRow.created_at)
            ).all()
            return [_session_from_row(r) for r in rows]

    # --- Participant instances ---

    def get_instance(self, instance_id: str) -> ParticipantInstance | None:
        with self._session() as db:
            row = db.get(InstanceRow, instance_id)
            return _instance_from_row(row) if row else None

    def get_instance_by_access_code(self, access_code: str) -> ParticipantInstance | None:
        with self._session() as db:
            row = db.scalar(select(InstanceRow).where(InstanceRow.access_code == access_code))
            return _instance_from_row(row) if row else None

    def list_instances(self, session_id: str) -> list[ParticipantInstance]:
        with self._session() as db:
            rows = db.scalars(
                select(InstanceRow)
                .where(InstanceRow.session_id == session_id)
                .order_by(InstanceRow.created_at)
            ).all()
            return [_instance_from_row(r) for r in rows]

    def access_code_exists(self, access_code: str) -> bool:
        with self._session() as db:
            found = db.scalar(
                select(InstanceRow.id).where(InstanceRow.access_code == access_code)
            )
            return found is not None

    def transition_instance(
        self,
        instance_id: str,
        expected_status: ParticipantStatus,
        changes: dict[str, Any],
    ) -> bool:
        with self._session() as db:
            result = db.execute(
                update(InstanceRow)
                .where(InstanceRow.id == instance_id, InstanceRow.status == expected_status)
                .values(**changes)
            )
            return result.rowcount == 1

    def _delete(self, model: type[Base], key: str) -> bool:
        with self._session() as db:
            row = db.get(model, key)
            if row is None:
                return False
            db.delete(row)
            return True


def _answer_to_json(answer: Answer) -> dict[str, Any]:
    return {"id": answer.id, "text": answer.text, "is_correct": answer.is_correct}


def _answers_from_json(data: list[dict[str, Any]]) -> list[Answer]:
    return [
        Answer(id=a["id"], text=a["text"], is_correct=bool(a.get("is_correct")))
        for a in data or []
    ]


def _selection_to_json(selection: PoolSelection) -> dict[str, Any]:
    return {
        "pool_id": selection.pool_id,
        "questions_to_draw": selection.questions_to_draw,
        "points": selection.points,
    }


def _section_to_json(section: DrawnSection) -> dict[str, Any]:
    return {
        "pool_id": section.pool_id,
        "pool_name": section.pool_name,
        "points_per_question": section.points_per_question,
        "questions": [
            {
                "question_id": q.question_id,
                "text": q.text,
                "tags": list(q.tags),
                "answers": [_answer_to_json(a) for a in q.answers],
            }
            for q in section.questions
        ],
    }


def _section_from_json(data: dict[str, Any]) -> DrawnSection:
    return DrawnSection(
        pool_id=data["pool_id"],
        pool_name=data["pool_name"],
        points_per_question=data["points_per_question"],
        questions=[
            DrawnQuestion(
                question_id=q["question_id"],
                text=q["text"],
                answers=_answers_from_json(q["answers"]),
                tags=list(q.get("tags") or []),
            )
            for q in data.get("questions") or []
        ],
    )


def _session_to_row(session: TestSession) -> SessionRow:
    return SessionRow(
        id=session.id,
        template_id=session.template_id,
        template_name=session.template_name,
        owner_id=session.owner_id,
        time_limit_minutes=session.time_limit_minutes,
        status=session.status,
        access_codes=list(session.access_codes),
        starts_at=session.starts_at,
        ends_at=session.ends_at,
        created_at=session.created_at,
        updated_at=session.updated_at,
    )


def _instance_to_row(instance: ParticipantInstance) -> InstanceRow:
    return InstanceRow(
        id=instance.id,
        session_id=instance.session_id,
        access_code=instance.access_code,
        identifier=instance.identifier,
        sections=[_section_to_json(s) for s in instance.sections],
        status=instance.status,
        answers=dict(instance.answers),
        started_at=instance.started_at,
        completed_at=instance.completed_at,
        total_score=instance.total_score,
        max_score=instance.max_score,
        created_at=instance.created_at,
    )


def _utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    return as_utc(value) if value is not None else None


def _question_from_row(row: QuestionRow) -> Question:
    return Question(
        id=row.id,
        owner_id=row.owner_id,
        text=row.text,
        answers=_answers_from_json(row.answers),
        tags=list(row.tags or []),
        created_at=_utc(row.created_at),
        updated_at=_utc(row.updated_at),
    )


def _pool_from_row(row: PoolRow) -> QuestionPool:
    return QuestionPool(
        id=row.id,
        owner_id=row.owner_id,
        name=row.name,
        question_ids=list(row.question_ids or []),
        description=row.description,
        created_at=_utc(row.created_at),
        updated_at=_utc(row.updated_at),
    )


def _template_from_row(row: TemplateRow) -> TestTemplate:
    return TestTemplate(
        id=row.id,
        owner_id=row.owner_id,
        name=row.name,
        pool_selections=[
            PoolSelection(
                pool_id=s["pool_id"],
                questions_to_draw=int(s["questions_to_draw"]),
                points=s["points"],
            )
            for s in row.pool_selections or []
        ],
        description=row.description,
        created_at=_utc(row.created_at),
        updated_at=_utc(row.updated_at),
    )


def _session_from_row(row: SessionRow) -> TestSession:
    return TestSession(
        id=row.id,
        template_id=row.template_id,
        template_name=row.template_name,
        owner_id=row.owner_id,
        time_limit_minutes=row.time_limit_minutes,
        status=row.status,
        access_codes=list(row.access_codes or []),
        starts_at=_utc(row.starts_at),
        ends_at=_utc(row.ends_at),
        created_at=_utc(row.created_at),
        updated_at=_utc(row.updated_at),
    )


def _instance_from_row(row: InstanceRow) -> ParticipantInstance:
    return ParticipantInstance(
        id=row.id,
        session_id=row.session_id,
        access_code=row.access_code,
        identifier=row.identifier,
        sections=[_section_from_json(s) for s in row.sections or []],
        status=row.status,
        answers=dict(row.answers or {}),
        started_at=_utc(row.started_at),
        completed_at=_utc(row.completed_at),
        total_score=row.total_score,
        max_score=row.max_score,
        created_at=_utc(row.created_at),
    )
