"""Examiner-facing reports built from a session's participant instances."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from examforge.core.models import (
    DrawnQuestion,
    ParticipantInstance,
    ParticipantStatus,
    TestSession,
)
from examforge.core.services.question_bank import utc_now
from examforge.core.services.scoring import QuestionScore, score_instance


@dataclass(slots=True)
class ParticipantSummary:
    id: str
    session_id: str
    identifier: str
    access_code: str
    status: ParticipantStatus
    started_at: datetime | None
    completed_at: datetime | None
    time_taken_minutes: float | None
    total_score: float | None
    max_score: float
    created_at: datetime | None


@dataclass(slots=True)
class SessionStatistics:
    average_score: float | None
    highest_score: float | None
    lowest_score: float | None
    completion_rate: float
    completed_count: int
    in_progress_count: int
    not_started_count: int
    expired_count: int
    total_participants: int


@dataclass(slots=True)
class QuestionAnalysis:
    question_id: str
    question_number: int
    question_text: str
    correct_answer: str
    points: float
    correct_responses: int = 0
    total_responses: int = 0
    correct_percentage: float = 0.0
    participants_count: int = 0


@dataclass(slots=True)
class SessionReport:
    session: TestSession
    participants: list[ParticipantSummary]
    statistics: SessionStatistics
    question_analysis: list[QuestionAnalysis] = field(default_factory=list)


@dataclass(slots=True)
class ReviewedQuestion:
    """A drawn question with its pool and correctness flags, for examiner review."""

    question: DrawnQuestion
    pool_id: str


@dataclass(slots=True)
class ParticipantDetail:
    participant: ParticipantSummary
    answers: list[QuestionScore]
    questions: list[ReviewedQuestion]


class SessionReporter:
    """Builds session reports and per-participant details."""

    def __init__(self, now: Callable[[], datetime] = utc_now) -> None:
        self._now = now

    def build_report(
        self, session: TestSession, instances: list[ParticipantInstance]
    ) -> SessionReport:
        return SessionReport(
            session=session,
            participants=[self.summarize(i) for i in instances],
            statistics=self._statistics(instances),
            question_analysis=self._analyze_questions(instances),
        )

    def participant_detail(self, instance: ParticipantInstance) -> ParticipantDetail:
        scored = score_instance(instance, instance.answers)
        return ParticipantDetail(
            participant=self.summarize(instance),
            answers=scored.questions,
            questions=[
                ReviewedQuestion(question=q, pool_id=section.pool_id)
                for section, q in instance.iter_questions()
            ],
        )

    def summarize(self, instance: ParticipantInstance) -> ParticipantSummary:
        max_score = instance.max_score
        if max_score is None:
            max_score = sum(s.points_per_question * len(s.questions) for s in instance.sections)
        return ParticipantSummary(
            id=instance.id,
            session_id=instance.session_id,
            identifier=instance.identifier,
            access_code=instance.access_code,
            status=instance.status,
            started_at=instance.started_at,
            completed_at=instance.completed_at,
            time_taken_minutes=self._time_taken(instance),
            total_score=instance.total_score,
            max_score=max_score,
            created_at=instance.created_at,
        )

    def _time_taken(self, instance: ParticipantInstance) -> float | None:
        if instance.started_at is None:
            return None
        if instance.completed_at is not None:
            end = instance.completed_at
        elif instance.status == "in_progress":
            end = self._now()
        else:
            return None
        return round((end - instance.started_at).total_seconds() / 60, 1)

    @staticmethod
    def _statistics(instances: list[ParticipantInstance]) -> SessionStatistics:
        counts = {"completed": 0, "in_progress": 0, "not_started": 0, "expired": 0}
        for instance in instances:
            counts[instance.status] += 1
        scores = [
            i.total_score for i in instances if i.status == "completed" and i.total_score is not None
        ]
        total = len(instances)
        return SessionStatistics(
            average_score=round(sum(scores) / len(scores), 2) if scores else None,
            highest_score=max(scores) if scores else None,
            lowest_score=min(scores) if scores else None,
            completion_rate=round(counts["completed"] / total, 4) if total else 0.0,
            completed_count=counts["completed"],
            in_progress_count=counts["in_progress"],
            not_started_count=counts["not_started"],
            expired_count=counts["expired"],
            total_participants=total,
        )

    @staticmethod
    def _analyze_questions(instances: list[ParticipantInstance]) -> list[QuestionAnalysis]:
        """Aggregate per question across participants; responses count completed tests only."""
        analysis: dict[str, QuestionAnalysis] = {}
        for instance in instances:
            for section, question in instance.iter_questions():
                entry = analysis.get(question.question_id)
                if entry is None:
                    correct = next((a.text for a in question.answers if a.is_correct), "")
                    entry = QuestionAnalysis(
                        question_id=question.question_id,
                        question_number=len(analysis) + 1,
                        question_text=question.text,
                        correct_answer=correct,
                        points=section.points_per_question,
                    )
                    analysis[question.question_id] = entry
                entry.participants_count += 1
                if instance.status != "completed":
                    continue
                selected = instance.answers.get(question.question_id)
                if selected is None:
                    continue
                entry.total_responses += 1
                if selected == question.correct_answer_id:
                    entry.correct_responses += 1

        for entry in analysis.values():
            if entry.total_responses:
                entry.correct_percentage = round(
                    entry.correct_responses / entry.total_responses * 100, 2
                )
        return list(analysis.values())
