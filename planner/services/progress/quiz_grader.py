# planner/services/progress/quiz_grader.py
# Correction d'une tentative de quiz contre la liste de questions figée dans l'élément.

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from planner.models.activity import QuizConfig, QuizQuestion


@dataclass
class QuizGrade:
    score: float  # 0–100, pondéré par les points des questions
    earned_points: float
    total_points: float
    correct_answers: int
    total_questions: int
    passed: bool
    per_question: dict[str, bool] = field(default_factory=dict)

    @property
    def is_perfect(self) -> bool:
        return self.total_points > 0 and self.earned_points >= self.total_points


def _normalize(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value).strip().casefold()


def is_correct(question: QuizQuestion, answer: Any) -> bool:
    """Vrai si `answer` correspond à la bonne réponse.

    Description:
        Comparaison insensible à la casse et aux espaces. Une bonne réponse multiple
        (liste) exige exactement le même ensemble de choix, dans n'importe quel ordre.
    """
    if answer is None:
        return False
    expected = question.correct_answer
    if isinstance(expected, list):
        given = answer if isinstance(answer, (list, tuple, set)) else [answer]
        return {_normalize(v) for v in given} == {_normalize(v) for v in expected}
    if isinstance(answer, (list, tuple, set)):
        return len(answer) == 1 and _normalize(next(iter(answer))) == _normalize(expected)
    return _normalize(answer) == _normalize(expected)


def grade_quiz(config: QuizConfig, answers: dict[str, Any]) -> QuizGrade:
    """Corriger les réponses (clé = id de question) ; les questions sans réponse valent 0."""
    total_points = sum(q.points for q in config.questions)
    earned = 0.0
    correct = 0
    per_question: dict[str, bool] = {}
    for question in config.questions:
        ok = is_correct(question, answers.get(question.id))
        per_question[question.id] = ok
        if ok:
            earned += question.points
            correct += 1

    score = round(earned / total_points * 100, 2) if total_points > 0 else 0.0
    return QuizGrade(
        score=score,
        earned_points=earned,
        total_points=total_points,
        correct_answers=correct,
        total_questions=len(config.questions),
        passed=score >= config.passing_score,
        per_question=per_question,
    )
