import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

from stemplay.database import get_session
from stemplay.main import app
from stemplay.models import Quiz, User


@pytest.fixture(name="engine")
def engine_fixture():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture(name="session")
def session_fixture(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture(name="client")
def client_fixture(engine):
    def get_session_override():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = get_session_override
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def anyio_backend():
    return "asyncio"


def make_user(session, name, role="student", class_id="class-a"):
    user = User(name=name, role=role, class_id=class_id)
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def make_quiz(session, teacher, per_question_seconds=10, max_attempts=1, questions=None):
    quiz = Quiz(
        teacher_id=teacher.id,
        class_id=teacher.class_id,
        title="Circuits basics",
        questions=questions or [
            {"text": "Unit of resistance?", "options": ["Volt", "Ohm", "Amp"], "correct_index": 1},
            {"text": "Unit of current?", "options": ["Amp", "Watt"], "correct_index": 0},
        ],
        per_question_seconds=per_question_seconds,
        max_attempts_per_student=max_attempts,
    )
    session.add(quiz)
    session.commit()
    session.refresh(quiz)
    return quiz


def headers(user):
    return {"X-User-Id": user.id}
