import uuid
from datetime import datetime, timezone
from typing import Any, Literal, Optional
from sqlalchemy import Column, JSON, Index
from sqlmodel import SQLModel, Field


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _uuid() -> str:
    return str(uuid.uuid4())


class User(SQLModel, table=True):
    id: str = Field(default_factory=_uuid, primary_key=True)
    name: str = Field(index=True)
    role: str = Field(index=True)  # "student" | "teacher"
    class_id: Optional[str] = Field(default=None, index=True)
    created_at: datetime = Field(default_factory=_now)


class Quiz(SQLModel, table=True):
    id: str = Field(default_factory=_uuid, primary_key=True)
    teacher_id: str = Field(foreign_key="user.id", index=True)
    class_id: str = Field(index=True)
    title: str
    # [{"text": ..., "options": [...], "correct_index": n}]
    questions: list = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    per_question_seconds: int = 30
    max_attempts_per_student: int = 1
    published: bool = True
    created_at: datetime = Field(default_factory=_now)


class QuizAttempt(SQLModel, table=True):
    id: str = Field(default_factory=_uuid, primary_key=True)
    quiz_id: str = Field(foreign_key="quiz.id", index=True)
    student_id: str = Field(foreign_key="user.id", index=True)
    answers: list = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    correct_count: int = 0
    total_points: int = 0
    created_at: datetime = Field(default_factory=_now)


class AttemptQuota(SQLModel, table=True):
    """Authoritative attempts-used counter, one row per (quiz, student)."""

    quiz_id: str = Field(foreign_key="quiz.id", primary_key=True)
    student_id: str = Field(foreign_key="user.id", primary_key=True)
    attempts_used: int = 0


class LeaderboardEntry(SQLModel, table=True):
    """Best score of one student for one subject, scope and window bucket."""

    __table_args__ = (Index("ix_leaderboard_subject_scope", "subject_key", "scope_id"),)

    subject_key: str = Field(primary_key=True)  # "game:circuitsnap", "quiz:<id>"
    scope_id: str = Field(primary_key=True)  # class id
    student_id: str = Field(primary_key=True)
    window_bucket: str = Field(primary_key=True)  # "day:2026-10-17", "week:2026-W42", "all"
    best_points: int = 0
    best_meta: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    achieved_at: datetime = Field(default_factory=_now)


class ScoreSubmission(SQLModel, table=True):
    """Append-only log of leaderboard submissions."""

    __table_args__ = (Index("ix_submission_subject_scope", "subject_key", "scope_id"),)

    id: str = Field(default_factory=_uuid, primary_key=True)
    subject_key: str
    scope_id: str
    student_id: str = Field(index=True)
    points: int
    meta: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=_now)


# --- Pydantic request/response schemas ---

class UserCreate(SQLModel):
    name: str
    role: Literal["student", "teacher"] = "student"
    class_id: Optional[str] = None


class UserResponse(SQLModel):
    id: str
    name: str
    role: str
    class_id: Optional[str] = None


class QuestionDefinition(SQLModel):
    text: str
    options: list[str]
    correct_index: int


class QuizCreate(SQLModel):
    title: str
    questions: list[QuestionDefinition]
    per_question_seconds: int = 30
    max_attempts_per_student: int = 1
    published: bool = True


class QuizUpdate(SQLModel):
    title: Optional[str] = None
    questions: Optional[list[QuestionDefinition]] = None
    per_question_seconds: Optional[int] = None
    max_attempts_per_student: Optional[int] = None
    published: Optional[bool] = None


class QuizSummary(SQLModel):
    id: str
    title: str
    questions_count: int
    per_question_seconds: int
    max_attempts_per_student: int
    published: bool


class StudentQuizItem(SQLModel):
    id: str
    title: str
    per_question_seconds: int
    questions_count: int
    attempts_used: int
    max_attempts_per_student: int
    best_points: int


class StudentQuizList(SQLModel):
    quizzes: list[StudentQuizItem]


class StudentQuestion(SQLModel):
    # correct_index is never sent to students
    text: str
    options: list[str]


class StudentQuizDetail(SQLModel):
    id: str
    title: str
    per_question_seconds: int
    max_attempts_per_student: int
    attempts_used: int
    questions: list[StudentQuestion]


class AnswerIn(SQLModel):
    question_index: int
    selected_index: int
    time_taken_sec: Optional[float] = None


class AttemptSubmit(SQLModel):
    answers: list[AnswerIn]


class ScoredAnswerOut(SQLModel):
    question_index: int
    selected_index: int
    time_taken_sec: float
    correct: bool
    points: int


class AttemptOut(SQLModel):
    id: str
    correct_count: int
    total_points: int
    answers: list[ScoredAnswerOut]


class ScoreSubmit(SQLModel):
    type: Literal["game", "quiz"]
    ref: str
    points: float
    meta: Optional[dict[str, Any]] = None


class ResetRequest(SQLModel):
    type: Literal["game", "quiz"]
    ref: str


class LeaderboardRow(SQLModel):
    rank: int
    student_id: str
    name: str
    best_points: int
    achieved_at: datetime


class YourRank(SQLModel):
    rank: int
    best_points: int


class RankingView(SQLModel):
    type: str
    ref: str
    window: str
    top: list[LeaderboardRow]
    you: Optional[YourRank] = None
