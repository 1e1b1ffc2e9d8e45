from fastapi import APIRouter, Depends
from sqlmodel import Session, select
from stemplay.database import get_session
from stemplay.errors import NotFoundError, ValidationError
from stemplay.models import User, UserCreate, UserResponse

router = APIRouter(prefix="/api/user", tags=["user"])


def _to_response(user: User) -> UserResponse:
    return UserResponse(id=user.id, name=user.name, role=user.role, class_id=user.class_id)


@router.post("/register", response_model=UserResponse)
def register_user(data: UserCreate, session: Session = Depends(get_session)):
    """Register a new user or return the existing one with the same name, role and class."""
    name = data.name.strip()
    if not name:
        raise ValidationError("Name cannot be empty")
    if len(name) > 50:
        raise ValidationError("Name too long (max 50 chars)")

    existing = session.exec(
        select(User).where(
            User.name == name,
            User.role == data.role,
            User.class_id == data.class_id,
        )
    ).first()
    if existing:
        return _to_response(existing)

    user = User(name=name, role=data.role, class_id=data.class_id)
    session.add(user)
    session.commit()
    session.refresh(user)
    return _to_response(user)


@router.get("/{user_id}", response_model=UserResponse)
def get_user(user_id: str, session: Session = Depends(get_session)):
    """Get user by ID."""
    user = session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    return _to_response(user)
