"""Reusable FastAPI dependencies for auth, database access and service handles."""
from typing import Callable, Optional

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from .activity import ActivityRecorder
from .auth import decode_token
from .commands import BookingCommands
from .config import get_settings
from .database import SessionLocal, get_db
from .lifecycle import Actor
from .models import RoleEnum, User
from .notifications import build_notifier
from .side_effects import SideEffectDispatcher

settings = get_settings()
oauth_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")
optional_oauth_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


def _user_from_token(token: str, db: Session) -> User:
    payload = decode_token(token)
    subject: Optional[str] = payload.get("sub")
    if subject is None or not str(subject).isdigit():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing subject in token")
    user = db.get(User, int(subject))
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user


def get_current_user(token: str = Depends(oauth_scheme), db: Session = Depends(get_db)) -> User:
    return _user_from_token(token, db)


def get_optional_user(
    token: Optional[str] = Depends(optional_oauth_scheme), db: Session = Depends(get_db)
) -> Optional[User]:
    if not token:
        return None
    return _user_from_token(token, db)


def get_current_actor(current_user: User = Depends(get_current_user)) -> Actor:
    return Actor(id=current_user.id, role=current_user.role)


def allow_roles(*roles: RoleEnum) -> Callable[[User], User]:
    def dependency(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access forbidden")
        return current_user

    return dependency


require_admin = allow_roles(RoleEnum.ADMIN)


def init_side_effects(app: FastAPI) -> None:
    """Construct the notifier, audit recorder and dispatcher a service injects into commands."""

    app.state.notifier = build_notifier(settings)
    app.state.recorder = ActivityRecorder(SessionLocal)
    app.state.dispatcher = SideEffectDispatcher(max_workers=settings.side_effect_workers)


def get_booking_commands(request: Request, db: Session = Depends(get_db)) -> BookingCommands:
    state = request.app.state
    return BookingCommands(db, state.notifier, state.recorder, state.dispatcher)
