from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy import select
from sqlalchemy.orm import Session

from confbook.availability import AvailabilityChecker
from confbook.commands import BookingCommands
from confbook.config import get_settings
from confbook.database import Base, engine, get_db
from confbook.dependencies import get_booking_commands, get_current_actor, init_side_effects, require_admin
from confbook.error_handlers import apply_error_handlers
from confbook.lifecycle import Actor
from confbook.logging_middleware import add_access_log_middleware
from confbook.models import Booking, BookingStatus, Room, User
from confbook.rate_limit import apply_rate_limiter, limiter
from confbook.repository import BookingRepository
from confbook.schemas import (
    AvailabilityRead,
    BookingCreate,
    BookingRead,
    BookingStatusUpdate,
    BookingUpdate,
    UtcDateTime,
)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.run_db_migrations:
        Base.metadata.create_all(bind=engine)
    yield
    app.state.dispatcher.shutdown(wait=True)


def create_app() -> FastAPI:
    fastapi_app = FastAPI(title="Bookings Service", version="1.0.0", lifespan=lifespan)
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    apply_rate_limiter(fastapi_app)
    apply_error_handlers(fastapi_app)
    add_access_log_middleware(fastapi_app, "bookings")
    init_side_effects(fastapi_app)
    Instrumentator().instrument(fastapi_app).expose(fastapi_app)
    return fastapi_app


app = create_app()


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok", "service": "bookings"}


@app.post("/bookings", response_model=BookingRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
def create_booking(
    request: Request,
    booking_in: BookingCreate,
    actor: Actor = Depends(get_current_actor),
    commands: BookingCommands = Depends(get_booking_commands),
) -> Booking:
    return commands.create(booking_in, actor)


@app.get("/bookings/my", response_model=List[BookingRead])
@limiter.limit("30/minute")
def list_my_bookings(
    request: Request,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> List[Booking]:
    return list(db.scalars(select(Booking).where(Booking.user_id == actor.id).order_by(Booking.start_time.desc())))


@app.get("/bookings/availability", response_model=AvailabilityRead)
@limiter.limit("40/minute")
def check_availability(
    request: Request,
    room_id: int,
    start_time: UtcDateTime = Query(...),
    end_time: UtcDateTime = Query(...),
    exclude_booking_id: Optional[int] = None,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> AvailabilityRead:
    if end_time <= start_time:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="End time must be after start time")
    if db.get(Room, room_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Room not found")
    conflicts = AvailabilityChecker(BookingRepository(db)).find_conflicts(
        room_id, start_time, end_time, exclude_booking_id
    )
    return AvailabilityRead(
        room_id=room_id,
        start_time=start_time,
        end_time=end_time,
        available=not conflicts,
        conflicting_booking_ids=[booking.id for booking in conflicts],
    )


@app.get("/bookings/{booking_id}", response_model=BookingRead)
@limiter.limit("60/minute")
def get_booking(
    request: Request,
    booking_id: int,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> Booking:
    booking = db.get(Booking, booking_id)
    if not booking:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found")
    if not actor.is_admin and not actor.owns(booking):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    return booking


@app.patch("/bookings/{booking_id}", response_model=BookingRead)
@limiter.limit("20/minute")
def reschedule_booking(
    request: Request,
    booking_id: int,
    booking_update: BookingUpdate,
    actor: Actor = Depends(get_current_actor),
    commands: BookingCommands = Depends(get_booking_commands),
) -> Booking:
    return commands.reschedule(booking_id, booking_update, actor)


@app.patch("/bookings/{booking_id}/status", response_model=BookingRead)
@limiter.limit("20/minute")
def update_booking_status(
    request: Request,
    booking_id: int,
    status_update: BookingStatusUpdate,
    actor: Actor = Depends(get_current_actor),
    commands: BookingCommands = Depends(get_booking_commands),
) -> Booking:
    return commands.change_status(booking_id, status_update, actor)


@app.delete("/bookings/{booking_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("20/minute")
def delete_booking(
    request: Request,
    booking_id: int,
    actor: Actor = Depends(get_current_actor),
    commands: BookingCommands = Depends(get_booking_commands),
) -> None:
    commands.delete(booking_id, actor)


@app.get("/admin/bookings", response_model=List[BookingRead])
@limiter.limit("30/minute")
def list_all_bookings(
    request: Request,
    booking_status: Optional[BookingStatus] = Query(None, alias="status"),
    room_id: Optional[int] = None,
    start_after: Optional[UtcDateTime] = None,
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> List[Booking]:
    query = select(Booking)
    if booking_status is not None:
        query = query.where(Booking.status == booking_status)
    if room_id is not None:
        query = query.where(Booking.room_id == room_id)
    if start_after is not None:
        query = query.where(Booking.start_time >= start_after)
    return list(db.scalars(query.order_by(Booking.start_time.desc())))
