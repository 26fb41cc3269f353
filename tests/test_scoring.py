from __future__ import annotations

from examforge.core.models import Answer, DrawnQuestion, DrawnSection, ParticipantInstance
from examforge.core.services.scoring import score_instance


def _drawn(qid: str) -> DrawnQuestion:
    return DrawnQuestion(
        question_id=qid,
        text=qid,
        answers=[Answer(f"{qid}-right", "right", True), Answer(f"{qid}-wrong", "wrong")],
    )


def _instance() -> ParticipantInstance:
    return ParticipantInstance(
        id="i",
        session_id="s",
        access_code="CODE2345",
        identifier="ann",
        sections=[
            DrawnSection("p1", "P1", 5, [_drawn("q1"), _drawn("q2")]),
            DrawnSection("p2", "P2", 2.5, [_drawn("q3")]),
        ],
    )


def test_correct_answers_earn_section_points():
    result = score_instance(_instance(), {"q1": "q1-right", "q2": "q2-wrong", "q3": "q3-right"})
    assert result.total_score == 7.5
    assert result.max_score == 12.5
    assert result.correct_count == 2
    assert [q.points_earned for q in result.questions] == [5, 0, 2.5]


def test_unanswered_questions_score_zero():
    result = score_instance(_instance(), {})
    assert result.total_score == 0
    assert result.max_score == 12.5
    assert all(q.selected_answer_id is None and not q.is_correct for q in result.questions)


def test_breakdown_lists_every_drawn_question_in_order():
    result = score_instance(_instance(), {"q3": "q3-right"})
    assert [q.question_id for q in result.questions] == ["q1", "q2", "q3"]
    assert [q.points_possible for q in result.questions] == [5, 5, 2.5]
