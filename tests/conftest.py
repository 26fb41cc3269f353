from __future__ import annotations

import random
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import pytest

from examforge.core.exam_manager import ExamManager
from examforge.core.models import (
    AnswerInput,
    PoolInput,
    PoolSelection,
    Question,
    QuestionInput,
    QuestionPool,
    TemplateInput,
    TestTemplate,
)
from examforge.storage.memory_store import MemoryExamRepository

OWNER = "examiner-1"
OTHER_OWNER = "examiner-2"


class FakeClock:
    """Callable clock that tests move forward explicitly."""

    def __init__(self, start: datetime) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **delta: float) -> None:
        self.current += timedelta(**delta)


def question_input(text: str, answers: int = 4, correct: int = 0, tags=()) -> QuestionInput:
    return QuestionInput(
        text=text,
        answers=[
            AnswerInput(text=f"{text} / option {index}", is_correct=index == correct)
            for index in range(answers)
        ],
        tags=list(tags),
    )


@dataclass
class SeededBank:
    """Three questions in pool P1 and a template drawing two of them for 5 points each."""

    questions: list[Question]
    pool: QuestionPool
    template: TestTemplate


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def repository() -> MemoryExamRepository:
    return MemoryExamRepository()


@pytest.fixture
def manager(repository: MemoryExamRepository, clock: FakeClock) -> ExamManager:
    return ExamManager(repository, rng=random.Random(1234), now=clock)


@pytest.fixture
def make_question():
    return question_input


@pytest.fixture
def seeded(manager: ExamManager) -> SeededBank:
    questions = [
        manager.create_question(OWNER, question_input(f"Question {n}", tags=["algebra"]))
        for n in range(1, 4)
    ]
    pool = manager.create_pool(
        OWNER, PoolInput(name="P1", question_ids=[q.id for q in questions])
    )
    template = manager.create_template(
        OWNER,
        TemplateInput(
            name="Midterm",
            pool_selections=[PoolSelection(pool_id=pool.id, questions_to_draw=2, points=5)],
        ),
    )
    return SeededBank(questions=questions, pool=pool, template=template)
