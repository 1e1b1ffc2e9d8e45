import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import and_, func, or_
from sqlmodel import Session, select

from stemplay.config import get_settings
from stemplay.leaderboard import bucket_for_window, get_entry
from stemplay.models import LeaderboardEntry, LeaderboardRow, User, YourRank

logger = logging.getLogger(__name__)

UNKNOWN_NAME = "Student"


def _bucket_filter(subject_key: str, scope_id: str, bucket: str):
    return and_(
        LeaderboardEntry.subject_key == subject_key,
        LeaderboardEntry.scope_id == scope_id,
        LeaderboardEntry.window_bucket == bucket,
    )


def top_rows(
    session: Session,
    subject_key: str,
    scope_id: str,
    bucket: str,
    limit: int,
) -> list[LeaderboardRow]:
    """Top ``limit`` rows: points desc, then earlier achieved_at, then student_id."""
    results = session.exec(
        select(LeaderboardEntry, User.name)
        .join(User, User.id == LeaderboardEntry.student_id, isouter=True)
        .where(_bucket_filter(subject_key, scope_id, bucket))
        .order_by(
            LeaderboardEntry.best_points.desc(),
            LeaderboardEntry.achieved_at.asc(),
            LeaderboardEntry.student_id.asc(),
        )
        .limit(limit)
    ).all()

    return [
        LeaderboardRow(
            rank=i + 1,
            student_id=entry.student_id,
            name=name or UNKNOWN_NAME,
            best_points=entry.best_points,
            achieved_at=entry.achieved_at,
        )
        for i, (entry, name) in enumerate(results)
    ]


def rank_of(
    session: Session,
    subject_key: str,
    scope_id: str,
    bucket: str,
    student_id: str,
) -> Optional[YourRank]:
    """Rank of one student under the same total order, or None if unranked."""
    mine = get_entry(session, subject_key, scope_id, student_id, bucket)
    if mine is None:
        return None

    ahead = session.exec(
        select(func.count())
        .select_from(LeaderboardEntry)
        .where(
            _bucket_filter(subject_key, scope_id, bucket),
            or_(
                LeaderboardEntry.best_points > mine.best_points,
                and_(
                    LeaderboardEntry.best_points == mine.best_points,
                    LeaderboardEntry.achieved_at < mine.achieved_at,
                ),
                and_(
                    LeaderboardEntry.best_points == mine.best_points,
                    LeaderboardEntry.achieved_at == mine.achieved_at,
                    LeaderboardEntry.student_id < mine.student_id,
                ),
            ),
        )
    ).one()

    return YourRank(rank=ahead + 1, best_points=mine.best_points)


def query(
    session: Session,
    subject_key: str,
    scope_id: str,
    window: Optional[str],
    requester_id: Optional[str] = None,
    now: Optional[datetime] = None,
    limit: Optional[int] = None,
) -> tuple[list[LeaderboardRow], Optional[YourRank]]:
    """
    Ranking view for one subject within one scope.

    ``window`` is "daily", "weekly" or None (all-time) and selects the bucket
    containing ``now``. Returns ``(top, you)``; ``you`` is None when no
    requester is given or the requester has no entry.
    """
    bucket = bucket_for_window(window, now)
    limit = limit or get_settings().leaderboard_top_n

    top = top_rows(session, subject_key, scope_id, bucket, limit)
    you = rank_of(session, subject_key, scope_id, bucket, requester_id) if requester_id else None

    logger.debug(f"Ranking {subject_key}/{scope_id}/{bucket}: {len(top)} rows")
    return top, you
