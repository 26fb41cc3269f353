"""Domain models for the exam authoring and assessment application."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

SessionStatus = Literal["active", "in_progress", "completed", "cancelled", "expired"]
ParticipantStatus = Literal["not_started", "in_progress", "completed", "expired"]


@dataclass(slots=True)
class Answer:
    """One selectable answer of a multiple-choice question."""

    id: str
    text: str
    is_correct: bool = False


@dataclass(slots=True)
class Question:
    """Bank question owned by an examiner with exactly one correct answer."""

    id: str
    owner_id: str
    text: str
    answers: list[Answer]
    tags: list[str] = field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def correct_answer(self) -> Answer | None:
        return next((a for a in self.answers if a.is_correct), None)


@dataclass(slots=True)
class QuestionPool:
    """Named grouping of bank questions."""

    id: str
    owner_id: str
    name: str
    question_ids: list[str] = field(default_factory=list)
    description: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(slots=True)
class PoolSelection:
    """How many questions a template draws from one pool and what each is worth."""

    pool_id: str
    questions_to_draw: int
    points: float


@dataclass(slots=True)
class TestTemplate:
    """Reusable recipe of pool selections."""

    __test__ = False

    id: str
    owner_id: str
    name: str
    pool_selections: list[PoolSelection]
    description: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def total_questions(self) -> int:
        return sum(s.questions_to_draw for s in self.pool_selections)

    @property
    def total_points(self) -> float:
        return sum(s.questions_to_draw * s.points for s in self.pool_selections)


@dataclass(slots=True)
class DrawnQuestion:
    """Frozen snapshot of a question as presented to one participant."""

    question_id: str
    text: str
    answers: list[Answer]
    tags: list[str] = field(default_factory=list)

    @property
    def correct_answer_id(self) -> str | None:
        return next((a.id for a in self.answers if a.is_correct), None)


@dataclass(slots=True)
class DrawnSection:
    """Questions drawn from one pool selection."""

    pool_id: str
    pool_name: str
    points_per_question: float
    questions: list[DrawnQuestion]


@dataclass(slots=True)
class TestSession:
    """One launched instance of a template."""

    __test__ = False

    id: str
    template_id: str
    template_name: str
    owner_id: str
    time_limit_minutes: int
    status: SessionStatus = "active"
    access_codes: list[str] = field(default_factory=list)
    ends_at: datetime | None = None
    starts_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(slots=True)
class ParticipantInstance:
    """Access-code-scoped test content and result of one participant."""

    id: str
    session_id: str
    access_code: str
    identifier: str
    sections: list[DrawnSection]
    status: ParticipantStatus = "not_started"
    answers: dict[str, str] = field(default_factory=dict)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    total_score: float | None = None
    max_score: float | None = None
    created_at: datetime | None = None

    def iter_questions(self):
        """Yield ``(section, question)`` pairs in presentation order."""
        for section in self.sections:
            for question in section.questions:
                yield section, question

    @property
    def question_count(self) -> int:
        return sum(len(section.questions) for section in self.sections)


# --- Input records validated by core.validation ---


@dataclass(slots=True)
class AnswerInput:
    text: str
    is_correct: bool = False
    id: str | None = None


@dataclass(slots=True)
class QuestionInput:
    text: str
    answers: list[AnswerInput]
    tags: list[str] = field(default_factory=list)


@dataclass(slots=True)
class PoolInput:
    name: str
    description: str | None = None
    question_ids: list[str] = field(default_factory=list)


@dataclass(slots=True)
class TemplateInput:
    name: str
    pool_selections: list[PoolSelection]
    description: str | None = None


@dataclass(slots=True)
class SessionLaunchInput:
    template_id: str
    time_limit_minutes: int
    participants: list[str]
    ends_at: datetime | None = None
    starts_at: datetime | None = None


@dataclass(slots=True)
class SubmittedAnswer:
    """Answer chosen by a participant; ``selected_answer_id`` None means skipped."""

    question_id: str
    selected_answer_id: str | None = None
