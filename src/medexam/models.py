"""Data classes for the test-taking domain model."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

MODE_TRAINING = "training"
MODE_EXAM = "exam"
MODES = (MODE_TRAINING, MODE_EXAM)

TIER_FREE = "free"
TIER_PREMIUM = "premium"
TIER_TRIAL = "trial"
PREMIUM_TIERS = (TIER_PREMIUM, TIER_TRIAL)

ROLES = ("user", "doctor", "admin")


@dataclass(frozen=True)
class Option:
    id: int
    text: str
    is_correct: bool = False


@dataclass(frozen=True)
class Question:
    id: int
    text: str
    options: tuple[Option, ...]
    points: int = 1
    explanation: str = ""

    @property
    def correct_option_ids(self) -> frozenset:
        return frozenset(o.id for o in self.options if o.is_correct)

    @property
    def option_ids(self) -> frozenset:
        return frozenset(o.id for o in self.options)


@dataclass(frozen=True)
class Test:
    __test__ = False  # not a pytest test class

    id: int
    title: str
    questions: tuple[Question, ...] = ()
    category: Optional[str] = None
    is_published: bool = False
    is_premium: bool = False
    passing_score: int = 70
    time_limit: Optional[int] = None  # minutes

    @property
    def total_points(self) -> int:
        return sum(q.points for q in self.questions)

    def get_question(self, question_id: int) -> Optional[Question]:
        for q in self.questions:
            if q.id == question_id:
                return q
        return None


@dataclass(frozen=True)
class User:
    id: int
    name: str
    role: str = "user"
    subscription_tier: str = TIER_FREE


@dataclass(frozen=True)
class Remaining:
    used: int
    limit: Optional[int]  # None means unbounded
    can_start: bool


@dataclass
class Session:
    id: str
    user_id: int
    test: Test
    mode: str
    started_at: datetime
    answers: dict = field(default_factory=dict)  # question id -> frozenset of option ids
    marked: set = field(default_factory=set)  # question ids flagged for review
    submitted_at: Optional[datetime] = None

    @property
    def test_id(self) -> int:
        return self.test.id

    @property
    def is_submitted(self) -> bool:
        return self.submitted_at is not None


@dataclass(frozen=True)
class QuestionOutcome:
    question_id: int
    selected_option_ids: tuple[int, ...]
    correct_option_ids: tuple[int, ...]
    is_correct: bool
    points_earned: int
    points_possible: int


@dataclass(frozen=True)
class ScoreOutcome:
    outcomes: tuple[QuestionOutcome, ...]
    correct_answers: int
    incorrect_answers: int
    total_points_earned: int
    total_possible_points: int
    score_percentage: int
    passed: bool


@dataclass(frozen=True)
class Result:
    session_id: str
    user_id: int
    test_id: int
    mode: str
    outcomes: tuple[QuestionOutcome, ...]
    correct_answers: int
    incorrect_answers: int
    total_points_earned: int
    total_possible_points: int
    score_percentage: int
    passed: bool
    time_spent: int  # seconds
    started_at: datetime
    submitted_at: datetime
    over_time_limit: bool = False
