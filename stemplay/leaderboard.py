"""
Leaderboard store

One ``LeaderboardEntry`` row per (subject_key, scope_id, student_id,
window_bucket). Every submission touches three buckets (day, ISO week,
all-time) and each row only ever moves up.
"""
import logging
import math
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import delete
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlmodel import Session

from stemplay.errors import ValidationError
from stemplay.models import LeaderboardEntry, ScoreSubmission

logger = logging.getLogger(__name__)

ALL_TIME_BUCKET = "all"
WINDOWS = ("daily", "weekly")
MAX_POINTS = 1_000_000_000


def _as_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def day_bucket(ts: datetime) -> str:
    return f"day:{_as_utc(ts).date().isoformat()}"


def week_bucket(ts: datetime) -> str:
    year, week, _ = _as_utc(ts).isocalendar()
    return f"week:{year}-W{week:02d}"


def buckets_for(ts: datetime) -> list[str]:
    """Window buckets a timestamp falls into."""
    return [day_bucket(ts), week_bucket(ts), ALL_TIME_BUCKET]


def bucket_for_window(window: Optional[str], now: Optional[datetime] = None) -> str:
    """Resolve a query window (daily, weekly, None for all-time) to a bucket."""
    now = now or datetime.now(timezone.utc)
    if window in (None, "", "all"):
        return ALL_TIME_BUCKET
    if window == "daily":
        return day_bucket(now)
    if window == "weekly":
        return week_bucket(now)
    raise ValidationError(f"window must be one of {', '.join(WINDOWS)} or omitted")


def record_score(
    session: Session,
    subject_key: str,
    scope_id: str,
    student_id: str,
    points: int,
    timestamp: Optional[datetime] = None,
    meta: Optional[dict] = None,
) -> list[str]:
    """
    Raise the student's best score in every bucket ``timestamp`` falls into.

    Each bucket is one atomic upsert whose update branch only fires when the
    new points are strictly higher, so concurrent writers never lower a best.
    Does not commit. Returns the buckets evaluated.
    """
    if points is None or not math.isfinite(points) or not 0 <= points <= MAX_POINTS:
        raise ValidationError(f"points must be a number between 0 and {MAX_POINTS}")
    points = int(points)
    timestamp = _as_utc(timestamp or datetime.now(timezone.utc))

    session.add(ScoreSubmission(
        subject_key=subject_key,
        scope_id=scope_id,
        student_id=student_id,
        points=points,
        meta=meta,
        created_at=timestamp,
    ))

    buckets = buckets_for(timestamp)
    for bucket in buckets:
        stmt = sqlite_insert(LeaderboardEntry).values(
            subject_key=subject_key,
            scope_id=scope_id,
            student_id=student_id,
            window_bucket=bucket,
            best_points=points,
            best_meta=meta,
            achieved_at=timestamp,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["subject_key", "scope_id", "student_id", "window_bucket"],
            set_={
                "best_points": stmt.excluded.best_points,
                "best_meta": stmt.excluded.best_meta,
                "achieved_at": stmt.excluded.achieved_at,
            },
            where=stmt.excluded.best_points > LeaderboardEntry.best_points,
        )
        session.exec(stmt)

    logger.debug(f"Recorded {points} for {student_id} on {subject_key} in scope {scope_id}")
    return buckets


def get_entry(
    session: Session,
    subject_key: str,
    scope_id: str,
    student_id: str,
    window_bucket: str = ALL_TIME_BUCKET,
) -> Optional[LeaderboardEntry]:
    return session.get(
        LeaderboardEntry,
        (subject_key, scope_id, student_id, window_bucket),
        populate_existing=True,
    )


def reset_scope(session: Session, subject_key: str, scope_id: str) -> int:
    """
    Delete every ledger row (all buckets) and logged submission for one
    subject within one scope. Idempotent. Commits.

    Returns the number of ledger rows removed.
    """
    result = session.exec(
        delete(LeaderboardEntry).where(
            LeaderboardEntry.subject_key == subject_key,
            LeaderboardEntry.scope_id == scope_id,
        )
    )
    session.exec(
        delete(ScoreSubmission).where(
            ScoreSubmission.subject_key == subject_key,
            ScoreSubmission.scope_id == scope_id,
        )
    )
    session.commit()
    deleted = result.rowcount or 0
    logger.info(f"Reset {subject_key} for scope {scope_id}: {deleted} rows deleted")
    return deleted
