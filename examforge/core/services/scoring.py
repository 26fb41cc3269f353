"""Scoring of submitted answers against a participant's drawn questions."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping

from examforge.core.models import ParticipantInstance


@dataclass(slots=True)
class QuestionScore:
    question_id: str
    selected_answer_id: str | None
    is_correct: bool
    points_earned: float
    points_possible: float


@dataclass(slots=True)
class ScoreResult:
    total_score: float
    max_score: float
    questions: list[QuestionScore] = field(default_factory=list)

    @property
    def correct_count(self) -> int:
        return sum(1 for q in self.questions if q.is_correct)


def score_instance(instance: ParticipantInstance, answers: Mapping[str, str]) -> ScoreResult:
    """Score ``answers`` (``{question_id: answer_id}``) for every drawn question.

    Unanswered questions earn nothing but still count towards ``max_score``.
    """
    breakdown: list[QuestionScore] = []
    for section, question in instance.iter_questions():
        selected = answers.get(question.question_id)
        is_correct = selected is not None and selected == question.correct_answer_id
        breakdown.append(
            QuestionScore(
                question_id=question.question_id,
                selected_answer_id=selected,
                is_correct=is_correct,
                points_earned=section.points_per_question if is_correct else 0,
                points_possible=section.points_per_question,
            )
        )
    return ScoreResult(
        total_score=sum(q.points_earned for q in breakdown),
        max_score=sum(q.points_possible for q in breakdown),
        questions=breakdown,
    )
