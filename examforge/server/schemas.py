"""Request and response bodies for the HTTP API."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from examforge.core.models import (
    AnswerInput,
    PoolInput,
    PoolSelection,
    Question,
    QuestionInput,
    QuestionPool,
    SessionLaunchInput,
    SubmittedAnswer,
    TemplateInput,
    TestTemplate,
)
from examforge.core.services.session_report import ParticipantDetail


class _FromDomain(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# --- Requests ---


class AnswerPayload(BaseModel):
    """Payload schema for one answer of a question."""

    id: str | None = None
    text: str
    is_correct: bool = False


class QuestionPayload(BaseModel):
    text: str
    answers: list[AnswerPayload]
    tags: list[str] = Field(default_factory=list)

    def to_input(self) -> QuestionInput:
        return QuestionInput(
            text=self.text,
            answers=[AnswerInput(text=a.text, is_correct=a.is_correct, id=a.id) for a in self.answers],
            tags=list(self.tags),
        )


class QuestionImportPayload(BaseModel):
    text: str


class PoolCreatePayload(BaseModel):
    name: str
    description: str | None = None
    question_ids: list[str] = Field(default_factory=list)

    def to_input(self) -> PoolInput:
        return PoolInput(
            name=self.name, description=self.description, question_ids=list(self.question_ids)
        )


class PoolUpdatePayload(BaseModel):
    name: str
    description: str | None = None


class PoolQuestionsPayload(BaseModel):
    question_ids: list[str]


class PoolSelectionPayload(BaseModel):
    pool_id: str
    questions_to_draw: int
    points: float


class TemplatePayload(BaseModel):
    name: str
    description: str | None = None
    pool_selections: list[PoolSelectionPayload]

    def to_input(self) -> TemplateInput:
        return TemplateInput(
            name=self.name,
            description=self.description,
            pool_selections=[
                PoolSelection(s.pool_id, s.questions_to_draw, s.points)
                for s in self.pool_selections
            ],
        )


class SessionLaunchPayload(BaseModel):
    template_id: str
    time_limit_minutes: int
    participants: list[str]
    ends_at: datetime | None = None
    starts_at: datetime | None = None

    def to_input(self) -> SessionLaunchInput:
        return SessionLaunchInput(
            template_id=self.template_id,
            time_limit_minutes=self.time_limit_minutes,
            participants=list(self.participants),
            ends_at=self.ends_at,
            starts_at=self.starts_at,
        )


class AccessCodePayload(BaseModel):
    """Payload schema for redeeming an access code."""

    access_code: str


class SubmittedAnswerPayload(BaseModel):
    question_id: str
    selected_answer_id: str | None = None


class SubmissionPayload(BaseModel):
    """Payload schema for submitted answers."""

    access_code: str
    answers: list[SubmittedAnswerPayload] = Field(default_factory=list)

    def to_answers(self) -> list[SubmittedAnswer]:
        return [SubmittedAnswer(a.question_id, a.selected_answer_id) for a in self.answers]


class DevTokenPayload(BaseModel):
    examiner_id: str


# --- Responses ---


class AnswerOut(_FromDomain):
    id: str
    text: str
    is_correct: bool


class QuestionOut(_FromDomain):
    id: str
    owner_id: str
    text: str
    answers: list[AnswerOut]
    tags: list[str]
    created_at: datetime | None
    updated_at: datetime | None

    @classmethod
    def from_domain(cls, question: Question) -> "QuestionOut":
        return cls.model_validate(question)


class QuestionImportOut(BaseModel):
    imported: int
    questions: list[QuestionOut]


class PoolOut(_FromDomain):
    id: str
    owner_id: str
    name: str
    description: str | None
    question_ids: list[str]
    question_count: int
    created_at: datetime | None
    updated_at: datetime | None

    @classmethod
    def from_domain(cls, pool: QuestionPool) -> "PoolOut":
        return cls(
            id=pool.id,
            owner_id=pool.owner_id,
            name=pool.name,
            description=pool.description,
            question_ids=list(pool.question_ids),
            question_count=len(pool.question_ids),
            created_at=pool.created_at,
            updated_at=pool.updated_at,
        )


class PoolSelectionOut(_FromDomain):
    pool_id: str
    questions_to_draw: int
    points: float


class TemplateOut(_FromDomain):
    id: str
    owner_id: str
    name: str
    description: str | None
    pool_selections: list[PoolSelectionOut]
    total_questions: int
    total_points: float
    created_at: datetime | None
    updated_at: datetime | None

    @classmethod
    def from_domain(cls, template: TestTemplate) -> "TemplateOut":
        return cls.model_validate(template)


class SessionOut(_FromDomain):
    id: str
    template_id: str
    template_name: str
    owner_id: str
    time_limit_minutes: int
    status: str
    access_codes: list[str]
    starts_at: datetime | None
    ends_at: datetime | None
    created_at: datetime | None
    updated_at: datetime | None


class ParticipantOut(_FromDomain):
    id: str
    session_id: str
    identifier: str
    access_code: str
    status: str
    started_at: datetime | None
    completed_at: datetime | None
    time_taken_minutes: float | None
    total_score: float | None
    max_score: float
    created_at: datetime | None


class SessionDetailOut(BaseModel):
    session: SessionOut
    participants: list[ParticipantOut]


class ParticipantAnswerOut(_FromDomain):
    id: str
    text: str
    html: str


class ParticipantQuestionOut(_FromDomain):
    question_id: str
    text: str
    html: str
    answers: list[ParticipantAnswerOut]
    tags: list[str]


class ParticipantSectionOut(_FromDomain):
    pool_id: str
    pool_name: str
    points_per_question: float
    questions: list[ParticipantQuestionOut]


class ParticipantTestOut(_FromDomain):
    session_id: str
    access_code: str
    identifier: str
    status: str
    template_name: str
    time_limit_minutes: int
    started_at: datetime | None
    sections: list[ParticipantSectionOut]


class SubmissionOut(_FromDomain):
    access_code: str
    status: str
    total_score: float | None
    max_score: float | None
    completed_at: datetime | None


class StatisticsOut(_FromDomain):
    average_score: float | None
    highest_score: float | None
    lowest_score: float | None
    completion_rate: float
    completed_count: int
    in_progress_count: int
    not_started_count: int
    expired_count: int
    total_participants: int


class QuestionAnalysisOut(_FromDomain):
    question_id: str
    question_number: int
    question_text: str
    correct_answer: str
    points: float
    correct_responses: int
    total_responses: int
    correct_percentage: float
    participants_count: int


class SessionReportOut(_FromDomain):
    session: SessionOut
    participants: list[ParticipantOut]
    statistics: StatisticsOut
    question_analysis: list[QuestionAnalysisOut]


class QuestionScoreOut(_FromDomain):
    question_id: str
    selected_answer_id: str | None
    is_correct: bool
    points_earned: float
    points_possible: float


class ReviewedQuestionOut(BaseModel):
    question_id: str
    pool_id: str
    text: str
    answers: list[AnswerOut]


class ParticipantDetailOut(BaseModel):
    participant: ParticipantOut
    answers: list[QuestionScoreOut]
    questions: list[ReviewedQuestionOut]

    @classmethod
    def from_domain(cls, detail: ParticipantDetail) -> "ParticipantDetailOut":
        return cls(
            participant=ParticipantOut.model_validate(detail.participant),
            answers=[QuestionScoreOut.model_validate(a) for a in detail.answers],
            questions=[
                ReviewedQuestionOut(
                    question_id=item.question.question_id,
                    pool_id=item.pool_id,
                    text=item.question.text,
                    answers=[AnswerOut.model_validate(a) for a in item.question.answers],
                )
                for item in detail.questions
            ],
        )


class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
