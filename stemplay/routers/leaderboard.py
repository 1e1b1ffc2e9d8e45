import logging
from typing import Optional
from fastapi import APIRouter, Depends
from sqlmodel import Session
from stemplay import leaderboard, ranking
from stemplay.database import get_session
from stemplay.deps import get_current_user, require_student, require_teacher
from stemplay.errors import AuthorizationError, ValidationError
from stemplay.games import quiz_subject_key, resolve_game_ref
from stemplay.models import RankingView, ResetRequest, ScoreSubmit, User

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/leaderboard", tags=["leaderboard"])


def _subject_key(type_: str, ref: str) -> str:
    if not ref or not ref.strip():
        raise ValidationError("type and ref are required")
    if type_ == "game":
        return resolve_game_ref(ref)
    if type_ == "quiz":
        return quiz_subject_key(ref.strip())
    raise ValidationError('type must be "quiz" or "game"')


@router.post("/submit")
def submit_score(
    data: ScoreSubmit,
    student: User = Depends(require_student),
    session: Session = Depends(get_session),
):
    """Submit a mini-game score; keeps the best per window bucket."""
    if data.type != "game":
        raise ValidationError("Quiz scores are recorded by submitting a quiz attempt")
    subject_key = _subject_key(data.type, data.ref)

    try:
        leaderboard.record_score(
            session,
            subject_key=subject_key,
            scope_id=student.class_id,
            student_id=student.id,
            points=data.points,
            meta=data.meta,
        )
        session.commit()
    except Exception:
        session.rollback()
        raise

    return {"ok": True}


@router.get("", response_model=RankingView)
def get_leaderboard(
    type: str,
    ref: str,
    window: Optional[str] = None,
    viewer: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """Class leaderboard, top N plus the requesting student's own rank."""
    if viewer.role not in ("student", "teacher") or not viewer.class_id:
        raise AuthorizationError("A class member is required")

    subject_key = _subject_key(type, ref)
    requester = viewer.id if viewer.role == "student" else None
    top, you = ranking.query(session, subject_key, viewer.class_id, window, requester)

    return RankingView(
        type=type,
        ref=subject_key,
        window=window or "all",
        top=top,
        you=you,
    )


@router.post("/reset")
def reset_leaderboard(
    data: ResetRequest,
    teacher: User = Depends(require_teacher),
    session: Session = Depends(get_session),
):
    """Reset one leaderboard for the teacher's own class, across every window."""
    subject_key = _subject_key(data.type, data.ref)
    deleted = leaderboard.reset_scope(session, subject_key, teacher.class_id)
    logger.info(f"Teacher {teacher.id} reset {subject_key} for class {teacher.class_id}")
    return {"ok": True, "message": "Leaderboard reset for your class", "deleted": deleted}
