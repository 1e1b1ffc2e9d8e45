import math
from dataclasses import dataclass, field
from typing import Optional

# Wire value for "no answer". Never a valid option index.
NO_ANSWER = -1

BASE_POINTS = 100
# Points for a single question never exceed BASE_POINTS * TIME_BONUS_CAP
TIME_BONUS_CAP = 1.0


@dataclass(frozen=True)
class ScoredAnswer:
    question_index: int
    selected_index: int
    time_taken_sec: float
    correct: bool
    points: int


@dataclass(frozen=True)
class AttemptResult:
    correct_count: int
    total_points: int
    answers: list[ScoredAnswer] = field(default_factory=list)


def clamp_time(time_taken_sec: Optional[float], per_question_seconds: int) -> float:
    """Clamp a reported answer time into [0, per_question_seconds].

    A missing time counts as the full allowance.
    """
    if time_taken_sec is None:
        return float(per_question_seconds)
    return float(max(0.0, min(float(per_question_seconds), float(time_taken_sec))))


def normalize_selection(selected_index: Optional[int], option_count: int) -> int:
    """Map anything outside the option range to NO_ANSWER."""
    if selected_index is None or not 0 <= selected_index < option_count:
        return NO_ANSWER
    return selected_index


def time_factor(time_taken_sec: float, per_question_seconds: int) -> float:
    """Fraction of the allowance left when the answer came in, in [0, cap]."""
    if per_question_seconds <= 0:
        return 0.0
    remaining = per_question_seconds - clamp_time(time_taken_sec, per_question_seconds)
    return min(TIME_BONUS_CAP, remaining / per_question_seconds)


def question_points(
    correct: bool,
    time_taken_sec: float,
    per_question_seconds: int,
    base_points: int = BASE_POINTS,
) -> int:
    """Points for one question: 0 when wrong, at least 1 when correct."""
    if not correct:
        return 0
    scaled = math.floor(base_points * time_factor(time_taken_sec, per_question_seconds) + 0.5)
    return max(1, min(scaled, int(base_points * TIME_BONUS_CAP)))


def score_attempt(
    questions: list[dict],
    answers: list[dict],
    per_question_seconds: int,
    base_points: int = BASE_POINTS,
) -> AttemptResult:
    """
    Score a validated answer list against the quiz questions.

    ``questions`` are ``{"options": [...], "correct_index": n}`` dicts and
    ``answers`` are ``{"question_index", "selected_index", "time_taken_sec"}``
    dicts whose question indices are already known to be in range.
    Deterministic and side-effect free.
    """
    scored = []
    for ans in answers:
        q = questions[ans["question_index"]]
        selected = normalize_selection(ans.get("selected_index"), len(q["options"]))
        taken = clamp_time(ans.get("time_taken_sec"), per_question_seconds)
        correct = selected != NO_ANSWER and selected == q["correct_index"]
        scored.append(ScoredAnswer(
            question_index=ans["question_index"],
            selected_index=selected,
            time_taken_sec=taken,
            correct=correct,
            points=question_points(correct, taken, per_question_seconds, base_points),
        ))

    return AttemptResult(
        correct_count=sum(1 for s in scored if s.correct),
        total_points=sum(s.points for s in scored),
        answers=scored,
    )


def game_points(raw_score: float, multiplier: float = 1.0) -> int:
    """Mini-game points: non-negative integer ``raw_score * multiplier``."""
    return max(0, math.floor(raw_score * multiplier))
