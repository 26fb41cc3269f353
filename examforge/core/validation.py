"""Input validation for every write operation.

Each ``validate_*`` function either returns a normalized copy of its input or
raises :class:`~examforge.core.errors.ValidationError` with one descriptive
message. Ownership and existence checks need the store and therefore live in
the services; everything that can be decided from the input alone is here.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import AbstractSet, Iterable, Mapping, Sequence

from examforge.constants.assessment_constants import (
    FORBIDDEN_TAG_CHARACTERS,
    MAX_ANSWERS,
    MIN_ANSWERS,
)
from examforge.core.errors import ValidationError
from examforge.core.models import (
    AnswerInput,
    ParticipantInstance,
    PoolInput,
    PoolSelection,
    QuestionInput,
    QuestionPool,
    SessionLaunchInput,
    SubmittedAnswer,
    TemplateInput,
)


def validate_question_input(data: QuestionInput) -> QuestionInput:
    text = (data.text or "").strip()
    if not text:
        raise ValidationError("Question text cannot be empty.")

    answers = list(data.answers or [])
    if len(answers) < MIN_ANSWERS:
        raise ValidationError(f"Question must have at least {MIN_ANSWERS} answers.")
    if len(answers) > MAX_ANSWERS:
        raise ValidationError(f"Question cannot have more than {MAX_ANSWERS} answers.")

    cleaned_answers: list[AnswerInput] = []
    for answer in answers:
        answer_text = (answer.text or "").strip()
        if not answer_text:
            raise ValidationError("Answer text cannot be empty.")
        cleaned_answers.append(
            AnswerInput(text=answer_text, is_correct=bool(answer.is_correct), id=answer.id)
        )

    correct_count = sum(1 for a in cleaned_answers if a.is_correct)
    if correct_count != 1:
        raise ValidationError(
            f"Question must have exactly one correct answer (got {correct_count})."
        )

    explicit_ids = [a.id for a in cleaned_answers if a.id]
    if len(explicit_ids) != len(set(explicit_ids)):
        raise ValidationError("Answer ids must be unique within a question.")

    return QuestionInput(text=text, answers=cleaned_answers, tags=normalize_tags(data.tags))


def normalize_tags(tags: Iterable[str] | None) -> list[str]:
    """Strip, drop blanks and de-duplicate tags while keeping their order."""
    cleaned: list[str] = []
    for tag in tags or []:
        stripped = tag.strip()
        if not stripped:
            continue
        for character in FORBIDDEN_TAG_CHARACTERS:
            if character in stripped:
                raise ValidationError(f'Tags cannot contain the "{character}" character.')
        if stripped not in cleaned:
            cleaned.append(stripped)
    return cleaned


def validate_pool_input(data: PoolInput) -> PoolInput:
    name = (data.name or "").strip()
    if not name:
        raise ValidationError("Pool name is required.")
    question_ids = list(data.question_ids or [])
    if len(question_ids) != len(set(question_ids)):
        raise ValidationError("Pool cannot contain the same question twice.")
    description = data.description.strip() if data.description else None
    return PoolInput(name=name, description=description or None, question_ids=question_ids)


def validate_template_input(data: TemplateInput) -> TemplateInput:
    name = (data.name or "").strip()
    if not name:
        raise ValidationError("Template name is required.")
    selections = list(data.pool_selections or [])
    if not selections:
        raise ValidationError("Template must have at least one pool selection.")

    seen: set[str] = set()
    for selection in selections:
        if not selection.pool_id:
            raise ValidationError("Every pool selection needs a pool id.")
        if selection.pool_id in seen:
            raise ValidationError(f"Pool {selection.pool_id} is selected more than once.")
        seen.add(selection.pool_id)
        if selection.questions_to_draw < 1:
            raise ValidationError(
                f"Pool {selection.pool_id} must draw at least one question."
            )
        if selection.points < 0:
            raise ValidationError(f"Pool {selection.pool_id} cannot have negative points.")

    description = data.description.strip() if data.description else None
    return TemplateInput(
        name=name,
        pool_selections=[
            PoolSelection(s.pool_id, s.questions_to_draw, s.points) for s in selections
        ],
        description=description or None,
    )


def validate_draw_counts(
    selections: Iterable[PoolSelection],
    pools: Mapping[str, QuestionPool],
) -> None:
    """Check that the selections can be drawn without repeating a question.

    Each pool must hold enough questions on its own, and pools that share
    questions must still be able to supply distinct questions to all of them.
    """
    selections = list(selections)
    for selection in selections:
        pool = pools.get(selection.pool_id)
        if pool is None:
            raise ValidationError(f"Pool {selection.pool_id} does not exist.")
        available = len(pool.question_ids)
        if selection.questions_to_draw > available:
            raise ValidationError(
                f"Pool '{pool.name}' has {available} question(s) but "
                f"{selection.questions_to_draw} are to be drawn."
            )
    ensure_distinct_draws(
        [(s.questions_to_draw, pools[s.pool_id].question_ids) for s in selections]
    )


def ensure_distinct_draws(demands: Sequence[tuple[int, Sequence[str]]]) -> None:
    """Raise when overlapping candidate lists cannot all be served distinct questions."""
    if not can_supply_draws(demands):
        needed = sum(count for count, _ in demands)
        raise ValidationError(
            f"The selected pools share questions and cannot supply {needed} "
            "distinct questions."
        )


def can_supply_draws(
    demands: Sequence[tuple[int, Sequence[str]]],
    taken: AbstractSet[str] = frozenset(),
) -> bool:
    """Whether every ``(count, candidates)`` demand can get ``count`` distinct ids.

    No id may serve two demands and ids in ``taken`` are unavailable. Solved as
    a bipartite matching with one slot per question to draw.
    """
    slots: list[list[str]] = []
    for count, candidates in demands:
        options = [qid for qid in candidates if qid not in taken]
        if count > len(options):
            return False
        slots.extend([options] * count)

    holder: dict[str, int] = {}

    def assign(slot: int, visited: set[str]) -> bool:
        for qid in slots[slot]:
            if qid in visited:
                continue
            visited.add(qid)
            if qid not in holder or assign(holder[qid], visited):
                holder[qid] = slot
                return True
        return False

    return all(assign(slot, set()) for slot in range(len(slots)))


def validate_session_launch(data: SessionLaunchInput, now: datetime) -> SessionLaunchInput:
    template_id = (data.template_id or "").strip()
    if not template_id:
        raise ValidationError("Template id is required.")
    if not isinstance(data.time_limit_minutes, int) or isinstance(data.time_limit_minutes, bool):
        raise ValidationError("Time limit must be a whole number of minutes.")
    if data.time_limit_minutes <= 0:
        raise ValidationError("Time limit must be a positive number of minutes.")

    participants = [p.strip() for p in data.participants or []]
    if not participants:
        raise ValidationError("At least one participant identifier is required.")
    if any(not p for p in participants):
        raise ValidationError("Participant identifiers cannot be empty.")
    if len(participants) != len(set(participants)):
        raise ValidationError("Participant identifiers must be unique.")

    ends_at = data.ends_at
    if ends_at is not None:
        ends_at = as_utc(ends_at)
        if ends_at <= now:
            raise ValidationError("Session end time must be in the future.")
    starts_at = as_utc(data.starts_at) if data.starts_at is not None else None
    if starts_at is not None and ends_at is not None and starts_at >= ends_at:
        raise ValidationError("Session start time must be before its end time.")

    return SessionLaunchInput(
        template_id=template_id,
        time_limit_minutes=data.time_limit_minutes,
        participants=participants,
        ends_at=ends_at,
        starts_at=starts_at,
    )


def validate_submission(
    instance: ParticipantInstance,
    answers: Iterable[SubmittedAnswer],
) -> dict[str, str]:
    """Return the answered questions as ``{question_id: answer_id}``.

    Skipped entries (no selected answer) are accepted and simply left out.
    """
    presented = {q.question_id: {a.id for a in q.answers} for _, q in instance.iter_questions()}
    selected: dict[str, str] = {}
    seen: set[str] = set()
    for answer in answers:
        if answer.question_id not in presented:
            raise ValidationError(
                f"Question {answer.question_id} is not part of this test."
            )
        if answer.question_id in seen:
            raise ValidationError(
                f"Question {answer.question_id} was answered more than once."
            )
        seen.add(answer.question_id)
        if answer.selected_answer_id is None:
            continue
        if answer.selected_answer_id not in presented[answer.question_id]:
            raise ValidationError(
                f"Answer {answer.selected_answer_id} does not belong to question "
                f"{answer.question_id}."
            )
        selected[answer.question_id] = answer.selected_answer_id
    return selected


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
