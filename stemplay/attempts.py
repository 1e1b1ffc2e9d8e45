"""
Server-side quiz attempt submission.

One transaction: re-check and consume the attempt quota, score, store the
attempt, raise the leaderboard best. Any failure rolls the whole thing back.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Session

from stemplay import leaderboard, quota
from stemplay.config import get_settings
from stemplay.errors import ValidationError
from stemplay.games import quiz_subject_key
from stemplay.models import AnswerIn, Quiz, QuizAttempt, User
from stemplay.scoring import AttemptResult, score_attempt

logger = logging.getLogger(__name__)


def validate_answers(quiz: Quiz, answers: list[AnswerIn]) -> list[dict]:
    """One answer per question, in question order."""
    n = len(quiz.questions)
    if len(answers) != n:
        raise ValidationError(f"answers must match questions length ({n})")

    indices = [a.question_index for a in answers]
    if indices != list(range(n)):
        raise ValidationError("question_index must run 0..n-1 in order")

    return [
        {
            "question_index": a.question_index,
            "selected_index": a.selected_index,
            "time_taken_sec": a.time_taken_sec,
        }
        for a in answers
    ]


def submit_attempt(
    session: Session,
    quiz: Quiz,
    student: User,
    answers: list[AnswerIn],
    now: Optional[datetime] = None,
) -> tuple[QuizAttempt, AttemptResult]:
    raw = validate_answers(quiz, answers)
    now = now or datetime.now(timezone.utc)
    settings = get_settings()

    try:
        quota.reserve_attempt(session, student.id, quiz)

        result = score_attempt(
            quiz.questions, raw, quiz.per_question_seconds, settings.base_points
        )

        attempt = QuizAttempt(
            quiz_id=quiz.id,
            student_id=student.id,
            answers=[
                {
                    "question_index": s.question_index,
                    "selected_index": s.selected_index,
                    "time_taken_sec": s.time_taken_sec,
                    "correct": s.correct,
                    "points": s.points,
                }
                for s in result.answers
            ],
            correct_count=result.correct_count,
            total_points=result.total_points,
            created_at=now,
        )
        session.add(attempt)

        leaderboard.record_score(
            session,
            subject_key=quiz_subject_key(quiz.id),
            scope_id=quiz.class_id,
            student_id=student.id,
            points=result.total_points,
            timestamp=now,
            meta={"correct_count": result.correct_count, "total": len(quiz.questions)},
        )

        session.commit()
    except Exception:
        session.rollback()
        raise

    session.refresh(attempt)
    logger.info(
        f"Attempt {attempt.id} by {student.id} on quiz {quiz.id}: "
        f"{result.correct_count}/{len(quiz.questions)} correct, {result.total_points} points"
    )
    return attempt, result
