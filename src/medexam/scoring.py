"""Deterministic all-or-nothing scoring of submitted answers."""
from decimal import ROUND_HALF_UP, Decimal

from medexam.models import QuestionOutcome, ScoreOutcome, Test


def score_percentage(earned: int, possible: int) -> int:
    """Whole-number percentage, halves rounded up."""
    if possible <= 0:
        raise ValueError("Cannot score a test worth zero points")
    ratio = Decimal(earned) * 100 / Decimal(possible)
    return int(ratio.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def score(test: Test, answers: dict) -> ScoreOutcome:
    """Score ``answers`` (question id -> selected option ids) against ``test``.

    A question is correct only when the selection equals the correct set
    exactly; supersets and subsets both earn nothing. Unanswered questions
    count as incorrect and stay in the denominator.
    """
    outcomes = []
    for question in test.questions:
        correct_set = question.correct_option_ids
        selected_set = frozenset(answers.get(question.id, ()))
        is_correct = selected_set == correct_set
        outcomes.append(QuestionOutcome(
            question_id=question.id,
            selected_option_ids=tuple(sorted(selected_set)),
            correct_option_ids=tuple(sorted(correct_set)),
            is_correct=is_correct,
            points_earned=question.points if is_correct else 0,
            points_possible=question.points,
        ))

    correct = sum(1 for o in outcomes if o.is_correct)
    earned = sum(o.points_earned for o in outcomes)
    possible = test.total_points
    percentage = score_percentage(earned, possible)
    return ScoreOutcome(
        outcomes=tuple(outcomes),
        correct_answers=correct,
        incorrect_answers=len(outcomes) - correct,
        total_points_earned=earned,
        total_possible_points=possible,
        score_percentage=percentage,
        passed=percentage >= test.passing_score,
    )
