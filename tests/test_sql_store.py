from __future__ import annotations

import random
from dataclasses import replace
from datetime import timedelta, timezone

import pytest

from conftest import OWNER, question_input
from examforge.core.errors import ConflictError
from examforge.core.exam_manager import ExamManager
from examforge.core.models import (
    PoolInput,
    PoolSelection,
    SessionLaunchInput,
    SubmittedAnswer,
    TemplateInput,
)
from examforge.storage.sql_store import SqlExamRepository


@pytest.fixture
def sql_repository() -> SqlExamRepository:
    return SqlExamRepository.from_url("sqlite://")


@pytest.fixture
def sql_manager(sql_repository, clock) -> ExamManager:
    return ExamManager(sql_repository, rng=random.Random(7), now=clock)


def _setup_template(manager: ExamManager):
    questions = [
        manager.create_question(OWNER, question_input(f"SQL {n}", answers=5, tags=["db"]))
        for n in range(3)
    ]
    pool = manager.create_pool(OWNER, PoolInput(name="Storage", question_ids=[q.id for q in questions]))
    template = manager.create_template(
        OWNER,
        TemplateInput(name="DB quiz", pool_selections=[PoolSelection(pool.id, 2, 5)]),
    )
    return questions, pool, template


def test_records_round_trip_with_utc_timestamps(sql_manager, clock):
    questions, pool, template = _setup_template(sql_manager)

    loaded = sql_manager.get_question(OWNER, questions[0].id)
    assert loaded.text == "SQL 0"
    assert loaded.tags == ["db"]
    assert [a.is_correct for a in loaded.answers] == [True, False, False, False, False]
    assert loaded.created_at == clock()
    assert loaded.created_at.tzinfo is not None
    assert loaded.created_at.utcoffset() == timezone.utc.utcoffset(None)

    assert sql_manager.get_pool(OWNER, pool.id).question_ids == [q.id for q in questions]
    stored = sql_manager.get_template(OWNER, template.id)
    assert stored.pool_selections == [PoolSelection(pool.id, 2, 5)]


def test_full_session_lifecycle(sql_manager, clock):
    _, _, template = _setup_template(sql_manager)
    session, instances = sql_manager.launch_session(
        OWNER,
        SessionLaunchInput(template.id, 20, ["ann", "bob"], ends_at=clock() + timedelta(days=1)),
    )
    assert {i.identifier for i in instances} == {"ann", "bob"}

    ann = next(i for i in instances if i.identifier == "ann")
    view = sql_manager.redeem_access_code(ann.access_code)
    # Five answers per question are trimmed to the default four
    assert all(len(q.answers) == 4 for s in view.sections for q in s.questions)

    first = view.sections[0].questions[0]
    stored = sql_manager.list_participants(OWNER, session.id)
    drawn = next(i for i in stored if i.id == ann.id)
    correct_id = next(q.correct_answer_id for _, q in drawn.iter_questions() if q.question_id == first.question_id)

    clock.advance(minutes=3)
    result = sql_manager.submit_answers(ann.access_code, [SubmittedAnswer(first.question_id, correct_id)])
    assert (result.status, result.total_score, result.max_score) == ("completed", 5, 10)
    assert result.answers == {first.question_id: correct_id}

    with pytest.raises(ConflictError):
        sql_manager.submit_answers(ann.access_code, [])

    closed = sql_manager.close_session(OWNER, session.id)
    assert closed.status == "completed"
    report = sql_manager.get_session_report(OWNER, session.id)
    assert report.statistics.completed_count == 1
    assert report.statistics.expired_count == 1
    assert {p.identifier: p.time_taken_minutes for p in report.participants}["ann"] == 3


def test_transition_is_check_and_set(sql_repository, sql_manager):
    _, _, template = _setup_template(sql_manager)
    _, instances = sql_manager.launch_session(OWNER, SessionLaunchInput(template.id, 10, ["ann"]))
    instance_id = instances[0].id

    assert sql_repository.transition_instance(instance_id, "not_started", {"status": "in_progress"})
    assert not sql_repository.transition_instance(instance_id, "not_started", {"status": "in_progress"})
    assert sql_repository.get_instance(instance_id).status == "in_progress"


def test_access_code_lookup(sql_repository, sql_manager):
    _, _, template = _setup_template(sql_manager)
    _, instances = sql_manager.launch_session(OWNER, SessionLaunchInput(template.id, 10, ["ann"]))
    code = instances[0].access_code

    assert sql_repository.access_code_exists(code)
    assert sql_repository.get_instance_by_access_code(code).id == instances[0].id
    assert not sql_repository.access_code_exists("ZZZZZZZZ")


def test_reference_queries(sql_manager):
    questions, pool, template = _setup_template(sql_manager)

    with pytest.raises(ConflictError, match="Storage"):
        sql_manager.delete_question(OWNER, questions[0].id)

    assert sql_manager.delete_pool(OWNER, pool.id) == [template.id]
    assert sql_manager.get_template(OWNER, template.id).pool_selections == []
    sql_manager.delete_question(OWNER, questions[0].id)
    assert len(sql_manager.list_questions(OWNER)) == 2


def test_clashing_access_code_rolls_back_the_whole_session(sql_repository, sql_manager):
    _, _, template = _setup_template(sql_manager)
    session, instances = sql_manager.launch_session(OWNER, SessionLaunchInput(template.id, 10, ["ann"]))
    duplicate = replace(session, id="dup-session", access_codes=[instances[0].access_code])
    newcomer = replace(instances[0], id="dup-new", session_id="dup-session", access_code="FRESH234")
    clashing = replace(instances[0], id="dup-old", session_id="dup-session")

    with pytest.raises(ConflictError, match="already in use"):
        sql_repository.create_session(duplicate, [newcomer, clashing])

    assert sql_repository.get_session("dup-session") is None
    assert sql_repository.list_instances("dup-session") == []
    assert not sql_repository.access_code_exists("FRESH234")
    assert [s.id for s in sql_repository.list_sessions(OWNER)] == [session.id]


def test_start_time_is_stored_and_enforced(sql_manager, clock):
    _, _, template = _setup_template(sql_manager)
    opens = clock() + timedelta(hours=1)
    session, instances = sql_manager.launch_session(
        OWNER, SessionLaunchInput(template.id, 10, ["ann"], starts_at=opens)
    )

    stored = sql_manager.get_session(OWNER, session.id)
    assert stored.starts_at == opens
    assert stored.starts_at.tzinfo is not None

    with pytest.raises(ConflictError, match="not opened yet"):
        sql_manager.redeem_access_code(instances[0].access_code)
    clock.advance(hours=1)
    assert sql_manager.redeem_access_code(instances[0].access_code).status == "in_progress"
