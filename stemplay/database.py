import os
from sqlmodel import SQLModel, create_engine, Session
from stemplay.config import get_settings

settings = get_settings()

# Ensure data directory exists
_db_dir = os.path.dirname(settings.db_path)
if _db_dir:
    os.makedirs(_db_dir, exist_ok=True)

# timeout: concurrent writers wait on the SQLite lock instead of failing
engine = create_engine(
    f"sqlite:///{settings.db_path}",
    echo=False,
    connect_args={"check_same_thread": False, "timeout": 30},
)


def init_db():
    SQLModel.metadata.create_all(engine)


def get_session():
    with Session(engine) as session:
        yield session
