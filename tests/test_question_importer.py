from __future__ import annotations

import pytest

from conftest import OWNER, question_input
from examforge.core.errors import ValidationError
from examforge.core.question_exporter import serialize_questions
from examforge.core.question_importer import (
    QuestionImportError,
    load_questions_from_file,
    parse_questions_text,
)

SAMPLE = """\
Q: What is $2 + 2$?
A: 3
B: 4
C: 5
CORRECT: B
TAGS: arithmetic, basics

---

Q: Which of these is a prime?
The answer is a single number.
A: 9
B: 15
C: 21
D: 33
E: 35
F: 37
correct: f
"""


def test_parse_blocks_with_multiline_text_and_tags():
    first, second = parse_questions_text(SAMPLE)

    assert first.text == "What is $2 + 2$?"
    assert [a.text for a in first.answers] == ["3", "4", "5"]
    assert [a.is_correct for a in first.answers] == [False, True, False]
    assert first.tags == ["arithmetic", "basics"]

    assert second.text == "Which of these is a prime?\nThe answer is a single number."
    assert len(second.answers) == 6
    assert second.answers[-1].is_correct
    assert second.tags == []


def test_blank_line_also_separates_blocks():
    text = "Q: One\nA: a\nB: b\nCORRECT: A\n\nQ: Two\nA: a\nB: b\nCORRECT: B\n"
    assert [q.text for q in parse_questions_text(text)] == ["One", "Two"]


@pytest.mark.parametrize(
    "block, message",
    [
        ("A: a\nB: b\nCORRECT: A", "Question text missing"),
        ("Q: x\nA: a\nB: b", "CORRECT line missing"),
        ("Q: x\nA: a\nB: b\nCORRECT: C", "CORRECT must be one of A, B"),
        ("Q: x\nA: a\nC: c\nCORRECT: A", "consecutive letters"),
        ("Q: x\nA: a\nCORRECT: A", "consecutive letters"),
        ("Q: x\nA: a\nA: b\nCORRECT: A", "defined twice"),
        ("Q: x\nA: a\nB: b\nCORRECT: A\nTAGS: #oops", '"#"'),
        ("stray text\nQ: x\nA: a\nB: b\nCORRECT: A", "outside of a known section"),
    ],
)
def test_invalid_blocks_are_reported_with_their_number(block, message):
    text = "Q: fine\nA: a\nB: b\nCORRECT: A\n---\n" + block
    with pytest.raises(QuestionImportError, match=message) as excinfo:
        parse_questions_text(text)
    assert excinfo.value.message.startswith("Question 2:")


def test_empty_document_is_rejected():
    with pytest.raises(QuestionImportError, match="did not contain any questions"):
        parse_questions_text("\n---\n\n")


def test_import_is_all_or_nothing(manager):
    broken = SAMPLE + "\n---\nQ: missing answers\nCORRECT: A\n"
    with pytest.raises(QuestionImportError):
        manager.import_questions(OWNER, broken)
    assert manager.list_questions(OWNER) == []

    imported = manager.import_questions(OWNER, SAMPLE)
    assert len(imported) == 2
    assert manager.list_tags(OWNER) == ["arithmetic", "basics"]


def test_export_can_be_imported_again(manager, tmp_path):
    manager.import_questions(OWNER, SAMPLE)
    exported = manager.export_questions(OWNER)

    assert "CORRECT: B" in exported
    assert "TAGS: arithmetic, basics" in exported
    reparsed = parse_questions_text(exported)
    assert [q.text for q in reparsed] == [q.text for q in manager.list_questions(OWNER)]

    target = tmp_path / "out" / "bank.txt"
    target.parent.mkdir()
    target.write_text(exported, encoding="utf-8")
    loaded = load_questions_from_file(target)
    assert len(loaded.questions) == 2
    assert loaded.source == str(target)


def test_paragraph_breaks_survive_export_and_import(manager):
    data = question_input("Read the passage.\n\nThen answer: which is larger?")
    data.answers[0].text = "The first value\n\nbecause it comes first"
    original = manager.create_question(OWNER, data)

    exported = manager.export_questions(OWNER)
    assert "\n\\\n" in exported

    (reparsed,) = parse_questions_text(exported)
    assert reparsed.text == original.text
    assert [a.text for a in reparsed.answers] == [a.text for a in original.answers]
    assert [a.is_correct for a in reparsed.answers] == [a.is_correct for a in original.answers]


def test_backslash_line_keeps_block_together():
    text = "Q: Intro\n\\\nMore\nA: x\nB: y\nCORRECT: A\n"
    (parsed,) = parse_questions_text(text)
    assert parsed.text == "Intro\n\nMore"


def test_tags_with_commas_are_rejected(manager):
    with pytest.raises(ValidationError, match='","'):
        manager.create_question(OWNER, question_input("Tagged", tags=["x, y"]))


def test_export_filters_by_tag_and_handles_empty_bank(manager):
    assert serialize_questions([]) == ""
    manager.import_questions(OWNER, SAMPLE)
    exported = manager.export_questions(OWNER, tags=["basics"])
    assert exported.count("Q: ") == 1
