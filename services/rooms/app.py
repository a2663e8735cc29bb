from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional

from circuitbreaker import circuit
from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy import select
from sqlalchemy.orm import Session

from confbook import activity
from confbook.cache import ListingCache
from confbook.config import get_settings
from confbook.database import Base, engine, get_db
from confbook.dependencies import get_current_user, init_side_effects, require_admin
from confbook.error_handlers import apply_error_handlers
from confbook.lifecycle import ACTIVE_STATUSES
from confbook.logging_middleware import add_access_log_middleware, client_ip
from confbook.models import Booking, RoleEnum, Room, User
from confbook.rate_limit import apply_rate_limiter, limiter
from confbook.repository import BookingRepository
from confbook.schemas import BookingRead, RoomCreate, RoomRead, RoomUpdate
from confbook.validators import ensure_valid, sanitize_input, validate_room

settings = get_settings()
room_listing_cache: ListingCache[List[RoomRead]] = ListingCache(ttl=settings.room_cache_ttl)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.run_db_migrations:
        Base.metadata.create_all(bind=engine)
    yield
    app.state.dispatcher.shutdown(wait=True)


def create_app() -> FastAPI:
    fastapi_app = FastAPI(title="Rooms Service", version="1.0.0", lifespan=lifespan)
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    apply_rate_limiter(fastapi_app)
    apply_error_handlers(fastapi_app)
    add_access_log_middleware(fastapi_app, "rooms")
    init_side_effects(fastapi_app)
    Instrumentator().instrument(fastapi_app).expose(fastapi_app)
    return fastapi_app


app = create_app()


def _get_room_or_404(db: Session, room_id: int) -> Room:
    room = db.get(Room, room_id)
    if not room:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Room not found")
    return room


def _audit(request: Request, user: User, event_type: str, room: Room) -> None:
    request.app.state.dispatcher.dispatch(
        "audit_" + event_type,
        request.app.state.recorder.record,
        user.id,
        event_type,
        {"room_id": room.id, "name": room.name},
        client_ip(request),
    )


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok", "service": "rooms"}


@app.get("/rooms", response_model=List[RoomRead])
@circuit(failure_threshold=5, recovery_timeout=60)
def list_rooms(
    request: Request,
    capacity: Optional[int] = Query(None, ge=1),
    location: Optional[str] = None,
    amenities: Optional[List[str]] = Query(default=None),
    include_inactive: bool = False,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> List[RoomRead]:
    include_inactive = include_inactive and current_user.role == RoleEnum.ADMIN
    cache_key = room_listing_cache.key(capacity, location, amenities, include_inactive)
    cached = room_listing_cache.get(cache_key)
    if cached is not None:
        return cached

    query = select(Room)
    if not include_inactive:
        query = query.where(Room.is_active.is_(True))
    if capacity:
        query = query.where(Room.capacity >= capacity)
    if location:
        query = query.where(Room.location.ilike(f"%{location}%"))
    rooms = db.scalars(query.order_by(Room.name, Room.id)).all()
    if amenities:
        wanted = set(amenities)
        rooms = [room for room in rooms if wanted.issubset(set(room.amenities or []))]
    result = [RoomRead.model_validate(room) for room in rooms]
    room_listing_cache.set(cache_key, result)
    return result


@app.get("/rooms/{room_id}", response_model=RoomRead)
@limiter.limit("60/minute")
def get_room(
    request: Request,
    room_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Room:
    room = _get_room_or_404(db, room_id)
    if not room.is_active and current_user.role != RoleEnum.ADMIN:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Room not found")
    return room


@app.get("/rooms/{room_id}/schedule", response_model=List[BookingRead])
@limiter.limit("60/minute")
def room_schedule(
    request: Request,
    room_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> List[Booking]:
    """Upcoming pending and approved bookings, i.e. the slots that are taken."""
    _get_room_or_404(db, room_id)
    return list(
        db.scalars(
            select(Booking)
            .where(
                Booking.room_id == room_id,
                Booking.status.in_(ACTIVE_STATUSES),
                Booking.end_time > datetime.utcnow(),
            )
            .order_by(Booking.start_time)
        )
    )


@app.post("/admin/rooms", response_model=RoomRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
def add_room(
    request: Request,
    room_in: RoomCreate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Room:
    data = room_in.model_dump()
    data["name"] = sanitize_input(data["name"])
    data["location"] = sanitize_input(data["location"])
    data["amenities"] = sorted({sanitize_input(item) for item in data["amenities"] if item.strip()})
    ensure_valid(validate_room(data))
    room = Room(**data, created_by=current_user.id)
    db.add(room)
    db.commit()
    db.refresh(room)
    room_listing_cache.invalidate()
    _audit(request, current_user, activity.ROOM_CREATE, room)
    return room


@app.put("/admin/rooms/{room_id}", response_model=RoomRead)
@limiter.limit("15/minute")
def update_room(
    request: Request,
    room_id: int,
    room_update: RoomUpdate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Room:
    room = _get_room_or_404(db, room_id)
    update_data = room_update.model_dump(exclude_unset=True)
    for field in ("name", "location"):
        if isinstance(update_data.get(field), str):
            update_data[field] = sanitize_input(update_data[field])
    if update_data.get("amenities") is not None:
        update_data["amenities"] = sorted({sanitize_input(item) for item in update_data["amenities"] if item.strip()})
    ensure_valid(validate_room(update_data, partial=True))

    for key, value in update_data.items():
        setattr(room, key, value)
    db.commit()
    db.refresh(room)
    room_listing_cache.invalidate()
    _audit(request, current_user, activity.ROOM_UPDATE, room)
    return room


@app.delete("/admin/rooms/{room_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("15/minute")
def delete_room(
    request: Request,
    room_id: int,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> None:
    # same lock booking commands take, so no booking can slip in meanwhile
    BookingRepository(db).lock_room(room_id)
    room = _get_room_or_404(db, room_id)
    upcoming = db.scalar(
        select(Booking.id)
        .where(
            Booking.room_id == room_id,
            Booking.status.in_(ACTIVE_STATUSES),
            Booking.end_time > datetime.utcnow(),
        )
        .limit(1)
    )
    if upcoming is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Room has upcoming bookings; cancel them or deactivate the room instead",
        )
    db.delete(room)
    db.commit()
    room_listing_cache.invalidate()
    _audit(request, current_user, activity.ROOM_DELETE, room)
