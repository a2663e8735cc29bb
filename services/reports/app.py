from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional

from dateutil.relativedelta import relativedelta
from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy.orm import Session

from confbook import reports
from confbook.activity import list_activity_logs
from confbook.config import get_settings
from confbook.database import Base, engine, get_db
from confbook.dependencies import init_side_effects, require_admin
from confbook.error_handlers import apply_error_handlers
from confbook.logging_middleware import add_access_log_middleware
from confbook.models import ActivityLog, BookingStatus, User
from confbook.rate_limit import apply_rate_limiter, limiter
from confbook.schemas import ActivityLogRead, BookingSummary, RoomUtilization, UserActivity, UtcDateTime

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.run_db_migrations:
        Base.metadata.create_all(bind=engine)
    yield
    app.state.dispatcher.shutdown(wait=True)


def create_app() -> FastAPI:
    fastapi_app = FastAPI(title="Reports Service", version="1.0.0", lifespan=lifespan)
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    apply_rate_limiter(fastapi_app)
    apply_error_handlers(fastapi_app)
    add_access_log_middleware(fastapi_app, "reports")
    init_side_effects(fastapi_app)
    Instrumentator().instrument(fastapi_app).expose(fastapi_app)
    return fastapi_app


app = create_app()


def _window(start: Optional[datetime], end: Optional[datetime], months: int = 1) -> tuple[datetime, datetime]:
    end = end or datetime.utcnow()
    start = start or end - relativedelta(months=months)
    if end <= start:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="End date must be after start date")
    return start, end


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok", "service": "reports"}


@app.get("/admin/reports", response_model=BookingSummary)
@limiter.limit("20/minute")
def summary(request: Request, _: User = Depends(require_admin), db: Session = Depends(get_db)) -> BookingSummary:
    return reports.booking_summary(db)


@app.get("/admin/reports/room-utilization", response_model=List[RoomUtilization])
@limiter.limit("20/minute")
def room_utilization(
    request: Request,
    start_date: Optional[UtcDateTime] = None,
    end_date: Optional[UtcDateTime] = None,
    months: int = Query(1, ge=1, le=12),
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> List[RoomUtilization]:
    start, end = _window(start_date, end_date, months)
    return reports.room_utilization(db, start, end)


@app.get("/admin/reports/user-activity", response_model=List[UserActivity])
@limiter.limit("20/minute")
def user_activity(
    request: Request,
    start_date: Optional[UtcDateTime] = None,
    end_date: Optional[UtcDateTime] = None,
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> List[UserActivity]:
    if start_date is None and end_date is None:
        return reports.user_activity(db)
    start, end = _window(start_date, end_date)
    return reports.user_activity(db, start, end)


@app.get("/admin/reports/export")
@limiter.limit("5/minute")
def export_bookings(
    request: Request,
    start_date: Optional[UtcDateTime] = None,
    end_date: Optional[UtcDateTime] = None,
    booking_status: Optional[BookingStatus] = Query(None, alias="status"),
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Response:
    start = end = None
    if start_date is not None or end_date is not None:
        start, end = _window(start_date, end_date)
    content = reports.export_bookings_csv(db, start, end, booking_status)
    filename = f"bookings-{datetime.utcnow():%Y%m%d}.csv"
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.get("/admin/activity-logs", response_model=List[ActivityLogRead])
@limiter.limit("20/minute")
def activity_logs(
    request: Request,
    user_id: Optional[int] = None,
    event_type: Optional[str] = None,
    limit: int = 100,
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> List[ActivityLog]:
    return list_activity_logs(db, user_id=user_id, event_type=event_type, limit=min(max(limit, 1), 500))
