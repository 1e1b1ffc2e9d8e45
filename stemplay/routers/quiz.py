import logging
from fastapi import APIRouter, Depends
from sqlalchemy import delete, func
from sqlmodel import Session, select
from stemplay import leaderboard, quota
from stemplay.attempts import submit_attempt
from stemplay.database import get_session
from stemplay.deps import require_student, require_teacher
from stemplay.errors import NotFoundError, ValidationError
from stemplay.games import quiz_subject_key
from stemplay.models import (
    User, Quiz, QuizAttempt, AttemptQuota,
    QuestionDefinition, QuizCreate, QuizUpdate, QuizSummary, StudentQuizItem, StudentQuizList,
    StudentQuizDetail, StudentQuestion, AttemptSubmit, AttemptOut, ScoredAnswerOut,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["quiz"])

MIN_SECONDS, MAX_SECONDS = 5, 600
MIN_ATTEMPTS, MAX_ATTEMPTS = 1, 10


def _summary(quiz: Quiz) -> QuizSummary:
    return QuizSummary(
        id=quiz.id,
        title=quiz.title,
        questions_count=len(quiz.questions),
        per_question_seconds=quiz.per_question_seconds,
        max_attempts_per_student=quiz.max_attempts_per_student,
        published=quiz.published,
    )


def _student_quiz(session: Session, quiz_id: str, student: User) -> Quiz:
    quiz = session.get(Quiz, quiz_id)
    if not quiz or quiz.class_id != student.class_id or not quiz.published:
        raise NotFoundError("Quiz not found")
    return quiz


def _validated_questions(questions: list[QuestionDefinition]) -> list[dict]:
    if not questions:
        raise ValidationError("at least 1 question is required")
    for i, q in enumerate(questions):
        if not q.text.strip() or len(q.options) < 2:
            raise ValidationError(f"Question {i + 1}: text and at least 2 options are required")
        if not 0 <= q.correct_index < len(q.options):
            raise ValidationError(f"Question {i + 1}: correct_index out of range")
    return [
        {"text": q.text.strip(), "options": list(q.options), "correct_index": q.correct_index}
        for q in questions
    ]


def _clamp(value: int, low: int, high: int) -> int:
    return min(high, max(low, value))


def _teacher_quiz(session: Session, quiz_id: str, teacher: User) -> Quiz:
    quiz = session.get(Quiz, quiz_id)
    if not quiz or quiz.teacher_id != teacher.id or quiz.class_id != teacher.class_id:
        raise NotFoundError("Quiz not found")
    return quiz


@router.post("/teacher/quizzes", response_model=QuizSummary)
def create_quiz(
    data: QuizCreate,
    teacher: User = Depends(require_teacher),
    session: Session = Depends(get_session),
):
    """Post a quiz to the teacher's class."""
    title = data.title.strip()
    if not title:
        raise ValidationError("title and at least 1 question are required")

    quiz = Quiz(
        teacher_id=teacher.id,
        class_id=teacher.class_id,
        title=title,
        questions=_validated_questions(data.questions),
        per_question_seconds=_clamp(data.per_question_seconds, MIN_SECONDS, MAX_SECONDS),
        max_attempts_per_student=_clamp(data.max_attempts_per_student, MIN_ATTEMPTS, MAX_ATTEMPTS),
        published=data.published,
    )
    session.add(quiz)
    session.commit()
    session.refresh(quiz)
    logger.info(f"Quiz {quiz.id} created by {teacher.id} for class {quiz.class_id}")
    return _summary(quiz)


@router.put("/teacher/quizzes/{quiz_id}", response_model=QuizSummary)
def update_quiz(
    quiz_id: str,
    data: QuizUpdate,
    teacher: User = Depends(require_teacher),
    session: Session = Depends(get_session),
):
    """Edit one of the teacher's quizzes. Only the fields sent are changed."""
    quiz = _teacher_quiz(session, quiz_id, teacher)

    if data.title is not None:
        title = data.title.strip()
        if not title:
            raise ValidationError("title cannot be empty")
        quiz.title = title
    if data.questions is not None:
        quiz.questions = _validated_questions(data.questions)
    if data.per_question_seconds is not None:
        quiz.per_question_seconds = _clamp(data.per_question_seconds, MIN_SECONDS, MAX_SECONDS)
    if data.max_attempts_per_student is not None:
        quiz.max_attempts_per_student = _clamp(
            data.max_attempts_per_student, MIN_ATTEMPTS, MAX_ATTEMPTS
        )
    if data.published is not None:
        quiz.published = data.published

    session.add(quiz)
    session.commit()
    session.refresh(quiz)
    logger.info(f"Quiz {quiz.id} updated by {teacher.id}")
    return _summary(quiz)


@router.delete("/teacher/quizzes/{quiz_id}")
def delete_quiz(
    quiz_id: str,
    teacher: User = Depends(require_teacher),
    session: Session = Depends(get_session),
):
    """Delete a quiz with its attempts, attempt counters and class leaderboard."""
    quiz = _teacher_quiz(session, quiz_id, teacher)
    title = quiz.title

    session.exec(delete(QuizAttempt).where(QuizAttempt.quiz_id == quiz.id))
    session.exec(delete(AttemptQuota).where(AttemptQuota.quiz_id == quiz.id))
    session.delete(quiz)
    # commits the whole deletion
    leaderboard.reset_scope(session, quiz_subject_key(quiz_id), teacher.class_id)

    logger.info(f"Quiz {quiz_id} deleted by {teacher.id}")
    return {"ok": True, "message": f'Deleted quiz "{title}"'}


@router.get("/teacher/quizzes", response_model=list[QuizSummary])
def list_teacher_quizzes(
    teacher: User = Depends(require_teacher),
    session: Session = Depends(get_session),
):
    quizzes = session.exec(
        select(Quiz)
        .where(Quiz.teacher_id == teacher.id, Quiz.class_id == teacher.class_id)
        .order_by(Quiz.created_at.desc())
    ).all()
    return [_summary(q) for q in quizzes]


@router.get("/student/quizzes", response_model=StudentQuizList)
def list_student_quizzes(
    student: User = Depends(require_student),
    session: Session = Depends(get_session),
):
    """Published quizzes of the student's class with attempts used and best points."""
    quizzes = session.exec(
        select(Quiz)
        .where(Quiz.class_id == student.class_id, Quiz.published == True)  # noqa: E712
        .order_by(Quiz.created_at.desc())
    ).all()

    used = {
        row.quiz_id: row.attempts_used
        for row in session.exec(
            select(AttemptQuota).where(AttemptQuota.student_id == student.id)
        ).all()
    }
    best = dict(
        session.exec(
            select(QuizAttempt.quiz_id, func.max(QuizAttempt.total_points))
            .where(QuizAttempt.student_id == student.id)
            .group_by(QuizAttempt.quiz_id)
        ).all()
    )

    return StudentQuizList(quizzes=[
        StudentQuizItem(
            id=q.id,
            title=q.title,
            per_question_seconds=q.per_question_seconds,
            questions_count=len(q.questions),
            attempts_used=used.get(q.id, 0),
            max_attempts_per_student=q.max_attempts_per_student,
            best_points=best.get(q.id) or 0,
        )
        for q in quizzes
    ])


@router.get("/student/quizzes/{quiz_id}", response_model=StudentQuizDetail)
def get_student_quiz(
    quiz_id: str,
    student: User = Depends(require_student),
    session: Session = Depends(get_session),
):
    """Quiz to play, without answers. Refused once the attempt quota is used up."""
    quiz = _student_quiz(session, quiz_id, student)
    decision = quota.ensure_allowed(session, student.id, quiz)

    return StudentQuizDetail(
        id=quiz.id,
        title=quiz.title,
        per_question_seconds=quiz.per_question_seconds,
        max_attempts_per_student=quiz.max_attempts_per_student,
        attempts_used=decision.attempts_used,
        questions=[StudentQuestion(text=q["text"], options=q["options"]) for q in quiz.questions],
    )


@router.post("/student/quizzes/{quiz_id}/attempt", response_model=AttemptOut)
def submit_quiz_attempt(
    quiz_id: str,
    data: AttemptSubmit,
    student: User = Depends(require_student),
    session: Session = Depends(get_session),
):
    """Submit a finished attempt. The quota is re-checked inside the transaction."""
    quiz = _student_quiz(session, quiz_id, student)
    attempt, result = submit_attempt(session, quiz, student, data.answers)

    return AttemptOut(
        id=attempt.id,
        correct_count=result.correct_count,
        total_points=result.total_points,
        answers=[
            ScoredAnswerOut(
                question_index=s.question_index,
                selected_index=s.selected_index,
                time_taken_sec=s.time_taken_sec,
                correct=s.correct,
                points=s.points,
            )
            for s in result.answers
        ],
    )
