"""Attempt quota guard.

``attempts_used`` lives server-side in ``AttemptQuota``. The check done when a
quiz is opened is advisory; the authoritative one is ``reserve_attempt``,
executed inside the submission transaction as a single conditional UPDATE.
"""
import logging
from dataclasses import dataclass

from sqlalchemy import update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlmodel import Session

from stemplay.errors import QuotaExceededError
from stemplay.models import AttemptQuota, Quiz

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuotaDecision:
    allowed: bool
    attempts_used: int
    max_attempts: int


def attempts_used(session: Session, student_id: str, quiz_id: str) -> int:
    row = session.get(AttemptQuota, (quiz_id, student_id))
    return row.attempts_used if row else 0


def authorize(session: Session, student_id: str, quiz: Quiz) -> QuotaDecision:
    used = attempts_used(session, student_id, quiz.id)
    return QuotaDecision(
        allowed=used < quiz.max_attempts_per_student,
        attempts_used=used,
        max_attempts=quiz.max_attempts_per_student,
    )


def ensure_allowed(session: Session, student_id: str, quiz: Quiz) -> QuotaDecision:
    decision = authorize(session, student_id, quiz)
    if not decision.allowed:
        raise QuotaExceededError("Attempts limit reached")
    return decision


def reserve_attempt(session: Session, student_id: str, quiz: Quiz) -> int:
    """
    Consume one attempt slot. Does not commit.

    Returns the new attempts_used. Raises QuotaExceededError when no slot is
    left; the caller must roll back.
    """
    session.exec(
        sqlite_insert(AttemptQuota)
        .values(quiz_id=quiz.id, student_id=student_id, attempts_used=0)
        .on_conflict_do_nothing(index_elements=["quiz_id", "student_id"])
    )
    result = session.exec(
        update(AttemptQuota)
        .where(
            AttemptQuota.quiz_id == quiz.id,
            AttemptQuota.student_id == student_id,
            AttemptQuota.attempts_used < quiz.max_attempts_per_student,
        )
        .values(attempts_used=AttemptQuota.attempts_used + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        logger.info(f"Quota exhausted for student {student_id} on quiz {quiz.id}")
        raise QuotaExceededError("Attempts limit reached")

    # expire any stale identity-map copy so later reads see the new count
    session.expire_all()
    return attempts_used(session, student_id, quiz.id)
