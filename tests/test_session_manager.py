from __future__ import annotations

from dataclasses import replace
from datetime import timedelta

import pytest

from conftest import OTHER_OWNER, OWNER, question_input
from examforge.constants.assessment_constants import ACCESS_CODE_ALPHABET
from examforge.core.errors import ConflictError, NotFoundError, ValidationError
from examforge.core.models import (
    PoolInput,
    PoolSelection,
    SessionLaunchInput,
    SubmittedAnswer,
    TemplateInput,
)


def _launch(manager, seeded, participants=("ann", "bob"), **kwargs):
    return manager.launch_session(
        OWNER,
        SessionLaunchInput(
            template_id=seeded.template.id,
            time_limit_minutes=45,
            participants=list(participants),
            **kwargs,
        ),
    )


def _answer_key(view, correct: int):
    """Answer the first ``correct`` questions correctly and the rest incorrectly."""
    answers = []
    questions = [q for section in view.sections for q in section.questions]
    for index, question in enumerate(questions):
        want_correct = index < correct
        # Bank questions built by the fixtures have "option 0" as the correct answer
        choice = next(
            a for a in question.answers if a.text.endswith("option 0") == want_correct
        )
        answers.append(SubmittedAnswer(question.question_id, choice.id))
    return answers


def test_launch_creates_one_instance_per_participant(manager, seeded):
    session, instances = _launch(manager, seeded)

    assert session.status == "active"
    assert session.template_name == "Midterm"
    assert [i.identifier for i in instances] == ["ann", "bob"]
    assert sorted(session.access_codes) == sorted(i.access_code for i in instances)
    for instance in instances:
        assert instance.status == "not_started"
        assert len(instance.access_code) == 8
        assert set(instance.access_code) <= set(ACCESS_CODE_ALPHABET)
        assert instance.question_count == seeded.template.total_questions
    assert len(set(session.access_codes)) == 2


def test_launch_rechecks_draw_counts_after_pool_shrinks(manager, seeded):
    for question in seeded.questions[:2]:
        manager.remove_question_from_pool(OWNER, seeded.pool.id, question.id)
    with pytest.raises(ValidationError, match="'P1' has 1 question"):
        _launch(manager, seeded)


def test_launch_requires_own_template(manager, seeded):
    with pytest.raises(NotFoundError):
        manager.launch_session(
            OTHER_OWNER, SessionLaunchInput(seeded.template.id, 30, ["ann"])
        )


def test_redeem_starts_instance_and_session(manager, seeded, clock):
    session, instances = _launch(manager, seeded)

    view = manager.redeem_access_code(instances[0].access_code.lower())

    assert view.status == "in_progress"
    assert view.started_at == clock()
    assert view.identifier == "ann"
    assert manager.get_session(OWNER, session.id).status == "in_progress"
    assert manager.get_test_instance(instances[0].access_code).sections == view.sections


def test_access_code_is_single_use(manager, seeded):
    _, instances = _launch(manager, seeded)
    manager.redeem_access_code(instances[0].access_code)
    with pytest.raises(ConflictError, match="already been used"):
        manager.redeem_access_code(instances[0].access_code)


def test_unknown_access_code(manager, seeded):
    _launch(manager, seeded)
    with pytest.raises(NotFoundError):
        manager.redeem_access_code("NOPE2345")
    with pytest.raises(NotFoundError):
        manager.redeem_access_code("   ")


def test_test_view_requires_redeemed_code(manager, seeded):
    _, instances = _launch(manager, seeded)
    with pytest.raises(ConflictError, match="not started"):
        manager.get_test_instance(instances[0].access_code)


def test_submit_scores_one_right_one_wrong(manager, seeded, clock):
    _, instances = _launch(manager, seeded)
    code = instances[0].access_code
    view = manager.redeem_access_code(code)
    clock.advance(minutes=12)

    result = manager.submit_answers(code, _answer_key(view, correct=1))

    assert result.status == "completed"
    assert result.total_score == 5
    assert result.max_score == 10
    assert result.completed_at == clock()


def test_submit_without_answers_scores_zero(manager, seeded):
    _, instances = _launch(manager, seeded)
    code = instances[0].access_code
    manager.redeem_access_code(code)

    result = manager.submit_answers(code, [])

    assert result.status == "completed"
    assert result.total_score == 0
    assert result.max_score == 10
    assert result.answers == {}


def test_second_submit_is_rejected_and_score_kept(manager, seeded):
    session, instances = _launch(manager, seeded)
    code = instances[0].access_code
    view = manager.redeem_access_code(code)
    manager.submit_answers(code, _answer_key(view, correct=2))

    with pytest.raises(ConflictError, match="already submitted"):
        manager.submit_answers(code, _answer_key(view, correct=0))

    stored = manager.list_participants(OWNER, session.id)[0]
    assert stored.total_score == 10
    assert stored.status == "completed"


def test_submit_before_redeem_is_rejected(manager, seeded):
    _, instances = _launch(manager, seeded)
    with pytest.raises(ConflictError):
        manager.submit_answers(instances[0].access_code, [])


def test_submit_rejects_question_not_drawn(manager, seeded):
    _, instances = _launch(manager, seeded)
    code = instances[0].access_code
    view = manager.redeem_access_code(code)
    drawn = {q.question_id for s in view.sections for q in s.questions}
    not_drawn = next(q.id for q in seeded.questions if q.id not in drawn)

    with pytest.raises(ValidationError, match="not part of this test"):
        manager.submit_answers(code, [SubmittedAnswer(not_drawn, None)])
    # The failed attempt leaves the test open
    assert manager.get_test_instance(code).status == "in_progress"


def test_session_completes_when_everyone_is_done(manager, seeded):
    session, instances = _launch(manager, seeded)
    for instance in instances:
        manager.redeem_access_code(instance.access_code)
        manager.submit_answers(instance.access_code, [])
    assert manager.get_session(OWNER, session.id).status == "completed"


def test_close_expires_unused_codes_and_blocks_participants(manager, seeded):
    session, instances = _launch(manager, seeded)
    manager.redeem_access_code(instances[0].access_code)

    closed = manager.close_session(OWNER, session.id)

    assert closed.status == "completed"
    statuses = {i.identifier: i.status for i in manager.list_participants(OWNER, session.id)}
    assert statuses == {"ann": "in_progress", "bob": "expired"}
    with pytest.raises(ConflictError):
        manager.redeem_access_code(instances[1].access_code)
    with pytest.raises(ConflictError):
        manager.submit_answers(instances[0].access_code, [])
    with pytest.raises(ConflictError):
        manager.close_session(OWNER, session.id)


def test_cancel_only_from_open_states(manager, seeded):
    session, instances = _launch(manager, seeded)
    cancelled = manager.cancel_session(OWNER, session.id)
    assert cancelled.status == "cancelled"
    with pytest.raises(ConflictError, match="cancelled"):
        manager.redeem_access_code(instances[0].access_code)
    with pytest.raises(ConflictError):
        manager.cancel_session(OWNER, session.id)


def test_redeem_after_end_time_expires_the_code(manager, seeded, clock):
    session, instances = _launch(manager, seeded, ends_at=clock() + timedelta(hours=1))
    clock.advance(hours=2)

    with pytest.raises(ConflictError, match="expired"):
        manager.redeem_access_code(instances[0].access_code)

    assert manager.get_session(OWNER, session.id).status == "expired"
    assert {i.status for i in manager.list_participants(OWNER, session.id)} == {"expired"}


def test_sessions_are_owner_scoped(manager, seeded):
    session, instances = _launch(manager, seeded)
    assert [s.id for s in manager.list_sessions(OWNER)] == [session.id]
    assert manager.list_sessions(OTHER_OWNER) == []
    with pytest.raises(NotFoundError):
        manager.get_session(OTHER_OWNER, session.id)
    with pytest.raises(NotFoundError):
        manager.get_participant_detail(OTHER_OWNER, session.id, instances[0].id)


def test_session_report(manager, seeded, clock):
    session, instances = _launch(manager, seeded, participants=("ann", "bob", "cy"))
    view = manager.redeem_access_code(instances[0].access_code)
    clock.advance(minutes=30)
    manager.submit_answers(instances[0].access_code, _answer_key(view, correct=2))
    view = manager.redeem_access_code(instances[1].access_code)
    clock.advance(minutes=15)
    manager.submit_answers(instances[1].access_code, _answer_key(view, correct=0))

    report = manager.get_session_report(OWNER, session.id)

    stats = report.statistics
    assert stats.total_participants == 3
    assert (stats.completed_count, stats.in_progress_count, stats.not_started_count) == (2, 0, 1)
    assert stats.average_score == 5
    assert (stats.highest_score, stats.lowest_score) == (10, 0)
    assert stats.completion_rate == pytest.approx(2 / 3, abs=1e-4)

    by_name = {p.identifier: p for p in report.participants}
    assert by_name["ann"].time_taken_minutes == 30
    assert by_name["bob"].time_taken_minutes == 15
    assert by_name["cy"].total_score is None
    assert by_name["cy"].max_score == 10

    assert sum(a.total_responses for a in report.question_analysis) == 4
    assert sum(a.correct_responses for a in report.question_analysis) == 2
    for entry in report.question_analysis:
        assert entry.points == 5
        assert entry.correct_answer.endswith("option 0")
        assert entry.participants_count >= 1


def test_participant_detail(manager, seeded):
    session, instances = _launch(manager, seeded)
    view = manager.redeem_access_code(instances[0].access_code)
    manager.submit_answers(instances[0].access_code, _answer_key(view, correct=1))

    detail = manager.get_participant_detail(OWNER, session.id, instances[0].id)

    assert detail.participant.total_score == 5
    assert [a.is_correct for a in detail.answers] == [True, False]
    assert [a.points_earned for a in detail.answers] == [5, 0]
    assert all(a.points_possible == 5 for a in detail.answers)
    for reviewed in detail.questions:
        assert reviewed.pool_id == seeded.pool.id
        assert sum(a.is_correct for a in reviewed.question.answers) == 1

    with pytest.raises(NotFoundError):
        manager.get_participant_detail(OWNER, session.id, "missing")


def test_codes_cannot_be_redeemed_before_the_session_opens(manager, seeded, clock):
    session, instances = _launch(manager, seeded, starts_at=clock() + timedelta(minutes=30))
    assert session.starts_at == clock() + timedelta(minutes=30)

    with pytest.raises(ConflictError, match="not opened yet"):
        manager.redeem_access_code(instances[0].access_code)
    with pytest.raises(ConflictError, match="not opened yet"):
        manager.get_test_instance(instances[0].access_code)
    assert manager.list_participants(OWNER, session.id)[0].status == "not_started"

    clock.advance(minutes=30)
    view = manager.redeem_access_code(instances[0].access_code)
    assert view.status == "in_progress"


def test_start_time_must_precede_end_time(manager, seeded, clock):
    with pytest.raises(ValidationError, match="start time must be before"):
        _launch(
            manager,
            seeded,
            starts_at=clock() + timedelta(hours=2),
            ends_at=clock() + timedelta(hours=1),
        )
    assert manager.list_sessions(OWNER) == []


def test_overlapping_pools_launch_for_every_participant(manager):
    questions = [manager.create_question(OWNER, question_input(f"Shared {n}")) for n in range(4)]
    ids = [q.id for q in questions]
    first = manager.create_pool(OWNER, PoolInput(name="A", question_ids=ids[:3]))
    second = manager.create_pool(OWNER, PoolInput(name="B", question_ids=ids[1:]))
    template = manager.create_template(
        OWNER,
        TemplateInput(
            name="Overlap",
            pool_selections=[
                PoolSelection(pool_id=first.id, questions_to_draw=2, points=1),
                PoolSelection(pool_id=second.id, questions_to_draw=2, points=1),
            ],
        ),
    )

    participants = [f"p{n}" for n in range(40)]
    _, instances = manager.launch_session(
        OWNER, SessionLaunchInput(template.id, 30, participants)
    )

    assert len(instances) == 40
    for instance in instances:
        drawn = [q.question_id for _, q in instance.iter_questions()]
        assert sorted(drawn) == sorted(ids)


def test_template_rejects_pools_that_cannot_supply_distinct_questions(manager):
    questions = [manager.create_question(OWNER, question_input(f"Shared {n}")) for n in range(2)]
    ids = [q.id for q in questions]
    first = manager.create_pool(OWNER, PoolInput(name="A", question_ids=ids))
    second = manager.create_pool(OWNER, PoolInput(name="B", question_ids=ids))

    with pytest.raises(ValidationError, match="cannot supply 3 distinct"):
        manager.create_template(
            OWNER,
            TemplateInput(
                name="Too greedy",
                pool_selections=[
                    PoolSelection(pool_id=first.id, questions_to_draw=2, points=1),
                    PoolSelection(pool_id=second.id, questions_to_draw=1, points=1),
                ],
            ),
        )
    assert manager.list_templates(OWNER) == []


def test_create_session_with_clashing_code_writes_nothing(manager, repository, seeded):
    session, instances = _launch(manager, seeded, participants=("ann",))
    duplicate = replace(session, id="dup-session", access_codes=[instances[0].access_code])
    clashing = replace(instances[0], id="dup-instance", session_id="dup-session")

    with pytest.raises(ConflictError, match="already in use"):
        repository.create_session(duplicate, [clashing])

    assert repository.get_session("dup-session") is None
    assert repository.get_instance("dup-instance") is None
    assert repository.list_instances("dup-session") == []
    assert repository.get_instance_by_access_code(instances[0].access_code).id == instances[0].id


def test_create_session_rejects_codes_repeated_within_the_batch(manager, repository, seeded):
    session, instances = _launch(manager, seeded, participants=("ann",))
    fresh = replace(session, id="batch", access_codes=["SAMECODE", "SAMECODE"])
    pair = [
        replace(instances[0], id=f"batch-{n}", session_id="batch", access_code="SAMECODE")
        for n in range(2)
    ]

    with pytest.raises(ConflictError):
        repository.create_session(fresh, pair)
    assert repository.get_session("batch") is None
    assert not repository.access_code_exists("SAMECODE")
