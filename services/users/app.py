from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import OAuth2PasswordRequestForm
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy import select
from sqlalchemy.orm import Session

from confbook import activity, auth
from confbook.config import get_settings
from confbook.database import Base, engine, get_db
from confbook.dependencies import get_current_user, get_optional_user, init_side_effects, require_admin
from confbook.error_handlers import apply_error_handlers
from confbook.logging_middleware import add_access_log_middleware, client_ip
from confbook.models import RoleEnum, User
from confbook.rate_limit import LOGIN_LIMIT, apply_rate_limiter, limiter
from confbook.schemas import Token, UserCreate, UserRead
from confbook.validators import ensure_valid, validate_password

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.run_db_migrations:
        Base.metadata.create_all(bind=engine)
    yield
    app.state.dispatcher.shutdown(wait=True)


def create_app() -> FastAPI:
    fastapi_app = FastAPI(title="Users Service", version="1.0.0", lifespan=lifespan)
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    apply_rate_limiter(fastapi_app)
    apply_error_handlers(fastapi_app)
    add_access_log_middleware(fastapi_app, "users")
    init_side_effects(fastapi_app)
    Instrumentator().instrument(fastapi_app).expose(fastapi_app)
    return fastapi_app


app = create_app()


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok", "service": "users"}


@app.post("/auth/register", response_model=UserRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
def register_user(
    request: Request,
    user_in: UserCreate,
    current_user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
) -> User:
    ensure_valid(validate_password(user_in.password, settings.min_password_length))
    email = user_in.email.strip().lower()
    if db.scalar(select(User).where(User.email == email)):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already registered")

    # admin role only from an existing admin, or to bootstrap the first one
    role = RoleEnum.USER
    if user_in.role == RoleEnum.ADMIN:
        admins_exist = db.scalar(select(User.id).where(User.role == RoleEnum.ADMIN).limit(1)) is not None
        if (current_user is not None and current_user.role == RoleEnum.ADMIN) or not admins_exist:
            role = RoleEnum.ADMIN

    user = User(email=email, hashed_password=auth.get_password_hash(user_in.password), role=role)
    db.add(user)
    db.commit()
    db.refresh(user)
    request.app.state.dispatcher.dispatch(
        "audit_register",
        request.app.state.recorder.record,
        user.id,
        activity.REGISTER,
        {"email": user.email, "role": user.role.value},
        client_ip(request),
    )
    return user


@app.post("/auth/login", response_model=Token)
@limiter.limit(LOGIN_LIMIT)
def login(request: Request, form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)) -> Token:
    user = auth.authenticate_user(db, form_data.username, form_data.password)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")

    request.app.state.dispatcher.dispatch(
        "audit_login", request.app.state.recorder.record, user.id, activity.LOGIN, {}, client_ip(request)
    )
    return Token(access_token=auth.create_user_token(user))


@app.get("/auth/me", response_model=UserRead)
def me(current_user: User = Depends(get_current_user)) -> User:
    return current_user


@app.get("/admin/users", response_model=List[UserRead])
@limiter.limit("20/minute")
def list_users(request: Request, _: User = Depends(require_admin), db: Session = Depends(get_db)) -> List[User]:
    return list(db.scalars(select(User).order_by(User.created_at.desc(), User.id.desc())))
