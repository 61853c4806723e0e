"""Tests for completion scoring rules and quiz grading."""

import datetime as dt

from bson import ObjectId

from planner.models.activity import QuizConfig
from planner.models.progress import ActivitySnapshot, ItemScoring
from planner.services.progress.quiz_grader import grade_quiz, is_correct
from planner.services.progress.scoring import (
    DefaultScoringRule,
    QuizScoringRule,
    ScoringContext,
    ScoringRegistry,
    default_registry,
)

DUE = dt.datetime(2025, 3, 4, 23, 59, 59, 999000)


def _activity(config=None, **scoring) -> ActivitySnapshot:
    return ActivitySnapshot(
        activity_id=ObjectId(),
        template_id=ObjectId(),
        day_of_week=1,
        title="Breathing",
        config=config or {"type": "quick"},
        scoring={"points_on_completion": 10, "bonus_points": 4, "penalty_points": 3, **scoring},
        metadata={"estimated_duration": 30},
    )


def _ctx(activity=None, completed_at=dt.datetime(2025, 3, 4, 10, 0), **kwargs) -> ScoringContext:
    return ScoringContext(activity=activity or _activity(), completed_at=completed_at, due_date=DUE, **kwargs)


class TestDefaultScoring:
    def test_fast_completion_with_high_affect(self):
        scoring = DefaultScoringRule().score(_ctx(time_spent=10, affect_after=5))
        assert scoring.points_earned == 10
        assert scoring.bonus_points == 3
        assert scoring.penalty_points == 0
        assert scoring.total_points == 13

    def test_no_bonus_at_estimate_or_low_affect(self):
        scoring = DefaultScoringRule().score(_ctx(time_spent=30, affect_after=3))
        assert scoring.bonus_points == 0
        assert scoring.total_points == 10
        assert scoring.feedback is None

    def test_affect_threshold_is_inclusive(self):
        assert DefaultScoringRule().score(_ctx(time_spent=60, affect_after=4)).bonus_points == 1

    def test_late_completion_penalty(self):
        late = dt.datetime(2025, 3, 5, 0, 0, 1)
        scoring = DefaultScoringRule().score(_ctx(completed_at=late, time_spent=10))
        assert scoring.penalty_points == 3
        assert scoring.total_points == 10 + 2 - 3
        assert "late penalty -3" in scoring.feedback


class TestQuizScoring:
    def test_perfect_quiz_adds_activity_bonus(self):
        activity = _activity({"type": "quiz", "questions": [{"id": "q", "question": "?", "correct_answer": "a",
                                                              "options": ["a"]}]})
        scoring = QuizScoringRule().score(_ctx(activity, time_spent=45, quiz_score=100))
        assert scoring.bonus_points == 4
        assert "perfect quiz" in scoring.feedback

    def test_partial_quiz_has_no_perfect_bonus(self):
        activity = _activity({"type": "quiz"})
        assert QuizScoringRule().score(_ctx(activity, time_spent=45, quiz_score=80)).bonus_points == 0


class TestScoringRegistry:
    def test_dispatches_on_activity_type(self):
        class Flat:
            def score(self, ctx):
                return ItemScoring(points_earned=1, total_points=1)

        registry = default_registry()
        registry.register("text", Flat())

        assert registry.score(_ctx(_activity({"type": "text"}))).total_points == 1
        assert registry.score(_ctx(time_spent=10)).total_points == 12
        assert isinstance(registry.rule_for("quiz"), QuizScoringRule)
        assert isinstance(ScoringRegistry().rule_for("video"), DefaultScoringRule)


class TestQuizGrader:
    config = QuizConfig.model_validate(
        {
            "passing_score": 60,
            "questions": [
                {"id": "a", "question": "Capital of France", "type": "short_answer", "correct_answer": "Paris",
                 "points": 2},
                {"id": "b", "question": "Primes", "options": ["2", "3", "4"], "correct_answer": ["2", "3"],
                 "points": 1},
                {"id": "c", "question": "Water is wet", "type": "true_false", "options": ["true", "false"],
                 "correct_answer": "true", "points": 1},
            ],
        }
    )

    def test_weighted_score(self):
        grade = grade_quiz(self.config, {"a": " paris ", "b": ["3", "2"], "c": False})
        assert grade.correct_answers == 2
        assert grade.earned_points == 3
        assert grade.score == 75.0
        assert grade.passed is True
        assert grade.per_question == {"a": True, "b": True, "c": False}

    def test_unanswered_questions_count_zero(self):
        grade = grade_quiz(self.config, {"c": True})
        assert grade.score == 25.0
        assert grade.passed is False
        assert not grade.is_perfect

    def test_multi_answer_needs_exact_set(self):
        question = self.config.questions[1]
        assert is_correct(question, ["2", "3"])
        assert not is_correct(question, ["2"])
        assert not is_correct(question, ["2", "3", "4"])
