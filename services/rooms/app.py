from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import func
from sqlalchemy.orm import Session

from common.availability import ReservationStatus
from common.config import get_settings
from common.database import Base, engine, get_db
from common.dependencies import (
    Membership,
    get_current_membership,
    get_owned_property,
    get_owned_room,
    require_manager,
)
from common.errors import register_error_handlers
from common.logging_middleware import add_audit_middleware
from common.models import Equipment, Property, Reservation, Room
from common.rate_limit import apply_rate_limiter, limiter
from common.schemas import (
    EquipmentCreate,
    EquipmentRead,
    EquipmentUpdate,
    RoomCreate,
    RoomListItem,
    RoomRead,
    RoomUpdate,
)

settings = get_settings()

# statuses counted as upcoming load on a room
ACTIVE_STATUSES = (ReservationStatus.PENDING, ReservationStatus.CONFIRMED)


@asynccontextmanager
async def lifespan(_: FastAPI):
    if settings.run_db_migrations:
        Base.metadata.create_all(bind=engine)
    yield


def create_app() -> FastAPI:
    fastapi_app = FastAPI(title="Rooms Service", version="0.3.0", lifespan=lifespan)
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    apply_rate_limiter(fastapi_app)
    add_audit_middleware(fastapi_app, "rooms")
    register_error_handlers(fastapi_app)
    return fastapi_app


app = create_app()


def _get_owned_equipment(db: Session, membership: Membership, equipment_id: int) -> Equipment:
    equipment = (
        db.query(Equipment)
        .join(Room, Equipment.room_id == Room.id)
        .join(Property, Room.property_id == Property.id)
        .filter(Equipment.id == equipment_id, Property.organisation_id == membership.organisation_id)
        .first()
    )
    if not equipment:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Equipment not found")
    return equipment


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok", "service": "rooms"}


@app.get("/rooms", response_model=List[RoomListItem])
def list_rooms(
    property_id: Optional[int] = None,
    membership: Membership = Depends(get_current_membership),
    db: Session = Depends(get_db),
) -> List[RoomListItem]:
    equipment_counts = (
        db.query(Equipment.room_id, func.count(Equipment.id).label("total")).group_by(Equipment.room_id).subquery()
    )
    reservation_counts = (
        db.query(Reservation.room_id, func.count(Reservation.id).label("total"))
        .filter(Reservation.status.in_(ACTIVE_STATUSES))
        .group_by(Reservation.room_id)
        .subquery()
    )
    query = (
        db.query(
            Room,
            Property.name,
            func.coalesce(equipment_counts.c.total, 0),
            func.coalesce(reservation_counts.c.total, 0),
        )
        .join(Property, Room.property_id == Property.id)
        .outerjoin(equipment_counts, equipment_counts.c.room_id == Room.id)
        .outerjoin(reservation_counts, reservation_counts.c.room_id == Room.id)
        .filter(Property.organisation_id == membership.organisation_id)
    )
    if property_id is not None:
        query = query.filter(Room.property_id == property_id)
    rows = query.order_by(Room.created_at.desc(), Room.id.desc()).all()
    return [
        RoomListItem(
            **RoomRead.model_validate(room).model_dump(),
            property_name=property_name,
            equipment_count=equipment_count,
            reservation_count=reservation_count,
        )
        for room, property_name, equipment_count, reservation_count in rows
    ]


@app.post("/rooms", response_model=RoomRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def add_room(
    request: Request,
    room_in: RoomCreate,
    membership: Membership = Depends(require_manager),
    db: Session = Depends(get_db),
) -> Room:
    get_owned_property(db, membership, room_in.property_id)
    room = Room(**room_in.model_dump())
    room.name = room.name.strip()
    db.add(room)
    db.commit()
    db.refresh(room)
    return room


@app.get("/rooms/{room_id}", response_model=RoomRead)
def get_room(
    room_id: int,
    membership: Membership = Depends(get_current_membership),
    db: Session = Depends(get_db),
) -> Room:
    return get_owned_room(db, membership, room_id)


@app.put("/rooms/{room_id}", response_model=RoomRead)
def update_room(
    room_id: int,
    room_update: RoomUpdate,
    membership: Membership = Depends(require_manager),
    db: Session = Depends(get_db),
) -> Room:
    room = get_owned_room(db, membership, room_id)
    update_data = room_update.model_dump(exclude_unset=True)
    if "pricing_type" in update_data and update_data["pricing_type"] is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="pricing_type cannot be null")
    for key, value in update_data.items():
        setattr(room, key, value)
    db.commit()
    db.refresh(room)
    return room


@app.delete("/rooms/{room_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_room(
    room_id: int,
    membership: Membership = Depends(require_manager),
    db: Session = Depends(get_db),
) -> None:
    room = get_owned_room(db, membership, room_id)
    db.delete(room)
    db.commit()


@app.get("/equipments", response_model=List[EquipmentRead])
def list_equipments(
    room_id: Optional[int] = None,
    membership: Membership = Depends(get_current_membership),
    db: Session = Depends(get_db),
) -> List[Equipment]:
    query = (
        db.query(Equipment)
        .join(Room, Equipment.room_id == Room.id)
        .join(Property, Room.property_id == Property.id)
        .filter(Property.organisation_id == membership.organisation_id)
    )
    if room_id is not None:
        query = query.filter(Equipment.room_id == room_id)
    return query.order_by(Equipment.created_at.desc(), Equipment.id.desc()).all()


@app.post("/equipments", response_model=EquipmentRead, status_code=status.HTTP_201_CREATED)
def add_equipment(
    equipment_in: EquipmentCreate,
    membership: Membership = Depends(require_manager),
    db: Session = Depends(get_db),
) -> Equipment:
    get_owned_room(db, membership, equipment_in.room_id)
    equipment = Equipment(**equipment_in.model_dump())
    db.add(equipment)
    db.commit()
    db.refresh(equipment)
    return equipment


@app.get("/equipments/{equipment_id}", response_model=EquipmentRead)
def get_equipment(
    equipment_id: int,
    membership: Membership = Depends(get_current_membership),
    db: Session = Depends(get_db),
) -> Equipment:
    return _get_owned_equipment(db, membership, equipment_id)


@app.put("/equipments/{equipment_id}", response_model=EquipmentRead)
def update_equipment(
    equipment_id: int,
    equipment_update: EquipmentUpdate,
    membership: Membership = Depends(require_manager),
    db: Session = Depends(get_db),
) -> Equipment:
    equipment = _get_owned_equipment(db, membership, equipment_id)
    for key, value in equipment_update.model_dump(exclude_unset=True).items():
        setattr(equipment, key, value)
    db.commit()
    db.refresh(equipment)
    return equipment


@app.delete("/equipments/{equipment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_equipment(
    equipment_id: int,
    membership: Membership = Depends(require_manager),
    db: Session = Depends(get_db),
) -> None:
    equipment = _get_owned_equipment(db, membership, equipment_id)
    db.delete(equipment)
    db.commit()
