"""Service that turns a template into per-participant drawn test content."""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import Mapping

from examforge.constants.assessment_constants import DEFAULT_MAX_PRESENTED_ANSWERS
from examforge.core.errors import ValidationError
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
from examforge.core.text_renderer import QuestionTextRenderer
from examforge.core.validation import can_supply_draws, ensure_distinct_draws


@dataclass(slots=True)
class ParticipantAnswerView:
    id: str
    text: str
    html: str


@dataclass(slots=True)
class ParticipantQuestionView:
    question_id: str
    text: str
    html: str
    answers: list[ParticipantAnswerView]
    tags: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ParticipantSectionView:
    pool_id: str
    pool_name: str
    points_per_question: float
    questions: list[ParticipantQuestionView]


@dataclass(slots=True)
class ParticipantTestView:
    """What a participant sees: drawn content without correctness flags."""

    session_id: str
    access_code: str
    identifier: str
    status: ParticipantStatus
    template_name: str
    time_limit_minutes: int
    started_at: datetime | None
    sections: list[ParticipantSectionView]


class SessionAssembler:
    """Draws questions for participants and sanitizes drawn content for display."""

    def __init__(
        self,
        rng: random.Random | None = None,
        shuffle_answers: bool = True,
        max_presented_answers: int | None = DEFAULT_MAX_PRESENTED_ANSWERS,
        renderer: QuestionTextRenderer | None = None,
    ) -> None:
        self._rng = rng or random.Random()
        self._shuffle_answers = shuffle_answers
        self._max_presented_answers = max_presented_answers
        self._renderer = renderer or QuestionTextRenderer()

    def draw_sections(
        self,
        template: TestTemplate,
        pools: Mapping[str, QuestionPool],
        questions: Mapping[str, Question],
    ) -> list[DrawnSection]:
        """Draw one participant's sections in template order.

        A question is never drawn twice for one participant. When pools share
        questions, a pick is only kept if the remaining selections can still be
        filled, so any template that has a valid assignment always draws.
        """
        plan: list[tuple[PoolSelection, QuestionPool, list[str]]] = []
        for selection in template.pool_selections:
            pool = pools.get(selection.pool_id)
            if pool is None:
                raise ValidationError(f"Pool {selection.pool_id} does not exist.")
            candidates = [qid for qid in pool.question_ids if qid in questions]
            if selection.questions_to_draw > len(candidates):
                raise ValidationError(
                    f"Pool '{pool.name}' has {len(candidates)} question(s) available but "
                    f"{selection.questions_to_draw} are to be drawn."
                )
            plan.append((selection, pool, candidates))
        ensure_distinct_draws([(s.questions_to_draw, c) for s, _, c in plan])

        drawn_ids: set[str] = set()
        sections: list[DrawnSection] = []
        for index, (selection, pool, candidates) in enumerate(plan):
            picked: list[str] = []
            for _ in range(selection.questions_to_draw):
                options = [qid for qid in candidates if qid not in drawn_ids]
                self._rng.shuffle(options)
                for qid in options:
                    drawn_ids.add(qid)
                    remaining = [(selection.questions_to_draw - len(picked) - 1, candidates)]
                    remaining.extend((s.questions_to_draw, c) for s, _, c in plan[index + 1 :])
                    if can_supply_draws(remaining, drawn_ids):
                        picked.append(qid)
                        break
                    drawn_ids.discard(qid)
            sections.append(
                DrawnSection(
                    pool_id=pool.id,
                    pool_name=pool.name,
                    points_per_question=selection.points,
                    questions=[self._snapshot(questions[qid]) for qid in picked],
                )
            )
        return sections

    def participant_view(
        self, instance: ParticipantInstance, session: TestSession
    ) -> ParticipantTestView:
        return ParticipantTestView(
            session_id=session.id,
            access_code=instance.access_code,
            identifier=instance.identifier,
            status=instance.status,
            template_name=session.template_name,
            time_limit_minutes=session.time_limit_minutes,
            started_at=instance.started_at,
            sections=[self._section_view(section) for section in instance.sections],
        )

    def _snapshot(self, question: Question) -> DrawnQuestion:
        answers = [Answer(a.id, a.text, a.is_correct) for a in question.answers]
        limit = self._max_presented_answers
        if limit is not None and len(answers) > limit:
            correct = [a for a in answers if a.is_correct]
            incorrect = [a for a in answers if not a.is_correct]
            kept = {a.id for a in correct}
            kept.update(a.id for a in self._rng.sample(incorrect, limit - len(correct)))
            # Keep authored order unless shuffling reorders it below
            answers = [a for a in answers if a.id in kept]
        if self._shuffle_answers:
            self._rng.shuffle(answers)
        return DrawnQuestion(
            question_id=question.id,
            text=question.text,
            answers=answers,
            tags=list(question.tags),
        )

    def _section_view(self, section: DrawnSection) -> ParticipantSectionView:
        return ParticipantSectionView(
            pool_id=section.pool_id,
            pool_name=section.pool_name,
            points_per_question=section.points_per_question,
            questions=[
                ParticipantQuestionView(
                    question_id=q.question_id,
                    text=q.text,
                    html=self._renderer.render_block(q.text),
                    answers=[
                        ParticipantAnswerView(
                            id=a.id, text=a.text, html=self._renderer.render_inline(a.text)
                        )
                        for a in q.answers
                    ],
                    tags=list(q.tags),
                )
                for q in section.questions
            ],
        )
