# tests/test_importer.py
import json
import sqlite3

import pytest

from medexam.catalog import get_test, list_tests
from medexam.db import init_db
from medexam.importer import check_questions, import_test_file, parse_question_text, read_questions

TEXT = """? Which vessel supplies the SA node in most people?
+ Right coronary artery
- Left circumflex artery

? Signs of right heart failure?
+ Raised JVP
- Pulmonary crackles
+ Peripheral oedema

? A question with no correct answer
- One
- Two
"""


def test_parse_question_text():
    questions = parse_question_text(TEXT)
    assert len(questions) == 3
    assert questions[0]["text"] == "Which vessel supplies the SA node in most people?"
    assert questions[1]["options"][2] == {"text": "Peripheral oedema", "is_correct": True}


def test_check_questions_reports_problems():
    valid, problems = check_questions(parse_question_text(TEXT))
    assert len(valid) == 2
    assert len(problems) == 1
    assert problems[0].startswith("Question 3")


def test_read_json_file(tmp_path):
    f = tmp_path / "bank.json"
    f.write_text(json.dumps({"questions": [
        {"text": "Q", "points": 2, "options": [{"text": "a", "is_correct": True}, {"text": "b"}]},
    ]}))
    questions = read_questions(str(f))
    assert questions[0]["points"] == 2


def test_read_yaml_file(tmp_path):
    f = tmp_path / "bank.yaml"
    f.write_text(
        "questions:\n"
        "  - text: Antidote for paracetamol overdose?\n"
        "    options:\n"
        "      - {text: N-acetylcysteine, is_correct: true}\n"
        "      - {text: Naloxone, is_correct: false}\n"
    )
    questions = read_questions(str(f))
    assert questions[0]["options"][0]["is_correct"] is True


def test_import_test_file(tmp_path, tmp_db):
    init_db(tmp_db)
    f = tmp_path / "cardio_2024.txt"
    f.write_text(TEXT)
    summary = import_test_file(tmp_db, str(f), category="Cardiology", time_limit=20)
    assert summary["imported"] == 2
    assert summary["skipped"] == 1
    test = get_test(tmp_db, summary["test_id"])
    assert test.title == "cardio_2024"
    assert test.is_published is False
    assert test.time_limit == 20
    assert len(test.questions) == 2
    assert test.questions[1].correct_option_ids == frozenset(
        o.id for o in test.questions[1].options if o.text in ("Raised JVP", "Peripheral oedema")
    )


def test_parse_ignores_file_header():
    content = "Cardiology bank\n- draft, do not publish\n? Q1\n+ a\n- b\n"
    questions = parse_question_text(content)
    assert questions == [{"text": "Q1", "options": [{"text": "a", "is_correct": True}, {"text": "b", "is_correct": False}]}]


def test_check_questions_requires_text():
    options = [{"text": "a", "is_correct": True}, {"text": "b"}]
    valid, problems = check_questions([
        {"text": "Q", "options": options},
        {"options": options},
        {"text": "  ", "options": options},
        {"text": "Q", "options": [{"is_correct": True}, {"text": "b"}]},
    ])
    assert len(valid) == 1
    assert [p.split(":")[0] for p in problems] == ["Question 2", "Question 3", "Question 4"]


def test_import_skips_question_without_text(tmp_path, tmp_db):
    init_db(tmp_db)
    options = [{"text": "a", "is_correct": True}, {"text": "b"}]
    f = tmp_path / "bank.json"
    f.write_text(json.dumps({"questions": [{"text": "Q", "options": options}, {"options": options}]}))
    summary = import_test_file(tmp_db, str(f))
    assert summary["imported"] == 1
    assert summary["skipped"] == 1
    assert len(get_test(tmp_db, summary["test_id"]).questions) == 1


def test_failed_import_writes_nothing(tmp_path, tmp_db, monkeypatch):
    init_db(tmp_db)
    f = tmp_path / "cardio.txt"
    f.write_text(TEXT)
    calls = []

    def flaky_insert(conn, test_id, *args, **kwargs):
        calls.append(test_id)
        if len(calls) == 2:
            raise sqlite3.OperationalError("disk I/O error")
        return real_insert(conn, test_id, *args, **kwargs)

    import medexam.importer
    real_insert = medexam.importer.insert_question
    monkeypatch.setattr(medexam.importer, "insert_question", flaky_insert)
    with pytest.raises(sqlite3.OperationalError):
        import_test_file(tmp_db, str(f))
    assert list_tests(tmp_db, published_only=False) == []
