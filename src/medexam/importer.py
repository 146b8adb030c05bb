"""Import test questions from text, JSON or YAML files.

Text files use the question-bank format::

    ? Which vessel supplies the SA node in most people?
    + Right coronary artery
    - Left circumflex artery
    - Left anterior descending artery

Each question starts with ``?``; option lines start with ``+`` (correct)
or ``-`` (incorrect). JSON and YAML files hold a ``questions`` list whose
items have ``text``, ``options`` (``text``/``is_correct``) and optional
``points`` and ``explanation``.
"""
import json
import logging
import re
from pathlib import Path

from medexam.catalog import insert_question, insert_test, validate_question
from medexam.db import get_connection

log = logging.getLogger(__name__)

QUESTION_SPLIT = re.compile(r"^\?\s*", re.MULTILINE)


def parse_question_text(content: str) -> list[dict]:
    """Parse the ``?``/``+``/``-`` text format into question dicts.

    Anything before the first ``?`` line is a file header and is ignored.
    """
    blocks = QUESTION_SPLIT.split(content)
    if not content.lstrip().startswith("?"):
        blocks = blocks[1:]
    questions = []
    for block in blocks:
        lines = [line.strip() for line in block.strip().splitlines() if line.strip()]
        if len(lines) < 2:
            continue
        options = []
        for line in lines[1:]:
            if line[0] not in "+-":
                continue
            text = line[1:].strip()
            if text:
                options.append({"text": text, "is_correct": line[0] == "+"})
        questions.append({"text": lines[0], "options": options})
    return questions


def read_questions(file_path: str) -> list[dict]:
    path = Path(file_path)
    suffix = path.suffix.lower()

    if suffix == ".json":
        data = json.loads(path.read_text())
    elif suffix in (".yaml", ".yml"):
        import yaml
        data = yaml.safe_load(path.read_text())
    else:
        return parse_question_text(path.read_text())
    return data["questions"] if isinstance(data, dict) else data


def check_questions(questions: list[dict]) -> tuple[list[dict], list[str]]:
    """Split parsed questions into valid ones and human-readable problems."""
    valid, problems = [], []
    for i, q in enumerate(questions, 1):
        try:
            if not isinstance(q, dict) or not str(q.get("text") or "").strip():
                raise ValueError("A question needs text")
            options = [(o["text"], bool(o.get("is_correct"))) for o in q.get("options", [])]
            validate_question(options, int(q.get("points", 1)))
        except (KeyError, TypeError, ValueError) as e:
            reason = f"option without {e}" if isinstance(e, KeyError) else str(e)
            problems.append(f"Question {i}: {reason}")
            continue
        valid.append(q)
    return valid, problems


def import_test_file(
    db_path: str,
    file_path: str,
    title: str | None = None,
    category: str | None = None,
    is_premium: bool = False,
    passing_score: int = 70,
    time_limit: int | None = None,
) -> dict:
    """Create an unpublished test from a question file. Invalid questions are skipped.

    The test and its questions are written in one transaction, so a failed
    import leaves nothing behind.
    """
    questions, problems = check_questions(read_questions(file_path))
    for problem in problems:
        log.warning("%s: %s", Path(file_path).name, problem)
    conn = get_connection(db_path)
    try:
        test_id = insert_test(
            conn,
            title or Path(file_path).stem,
            category=category,
            is_premium=is_premium,
            passing_score=passing_score,
            time_limit=time_limit,
        )
        for q in questions:
            insert_question(
                conn,
                test_id,
                str(q["text"]).strip(),
                [(o["text"], bool(o.get("is_correct"))) for o in q["options"]],
                points=int(q.get("points", 1)),
                explanation=q.get("explanation") or "",
            )
        conn.commit()
    finally:
        conn.close()
    log.info("Imported %d questions from %s into test %s", len(questions), Path(file_path).name, test_id)
    return {"test_id": test_id, "imported": len(questions), "skipped": len(problems), "problems": problems}
