from contextlib import asynccontextmanager
from typing import List

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from common.config import get_settings
from common.database import Base, engine, get_db
from common.dependencies import (
    Membership,
    allow_roles,
    get_current_membership,
    get_owned_property,
    require_manager,
)
from common.errors import register_error_handlers
from common.logging_middleware import add_audit_middleware
from common.models import MembershipRole, Property, PropertySettings, User
from common.rate_limit import apply_rate_limiter, limiter
from common.schemas import (
    PropertyCreate,
    PropertyRead,
    PropertySettingsRead,
    PropertySettingsUpdate,
    PropertyUpdate,
)

settings = get_settings()


@asynccontextmanager
async def lifespan(_: FastAPI):
    if settings.run_db_migrations:
        Base.metadata.create_all(bind=engine)
    yield


def create_app() -> FastAPI:
    fastapi_app = FastAPI(title="Properties Service", version="0.3.0", lifespan=lifespan)
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    apply_rate_limiter(fastapi_app)
    add_audit_middleware(fastapi_app, "properties")
    register_error_handlers(fastapi_app)
    return fastapi_app


app = create_app()


def _settings_for(db: Session, prop: Property) -> PropertySettings:
    property_settings = db.query(PropertySettings).filter(PropertySettings.property_id == prop.id).first()
    if property_settings is None:
        property_settings = PropertySettings(property_id=prop.id, currency=settings.default_currency)
        db.add(property_settings)
        db.flush()
    return property_settings


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok", "service": "properties"}


@app.get("/properties", response_model=List[PropertyRead])
def list_properties(
    membership: Membership = Depends(get_current_membership),
    db: Session = Depends(get_db),
) -> List[Property]:
    return (
        db.query(Property)
        .filter(Property.organisation_id == membership.organisation_id)
        .order_by(Property.created_at.desc(), Property.id.desc())
        .all()
    )


@app.post("/properties", response_model=PropertyRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
def create_property(
    request: Request,
    property_in: PropertyCreate,
    membership: Membership = Depends(require_manager),
    db: Session = Depends(get_db),
) -> Property:
    prop = Property(organisation_id=membership.organisation_id, **property_in.model_dump())
    prop.name = prop.name.strip()
    db.add(prop)
    db.commit()
    db.refresh(prop)
    return prop


@app.get("/properties/{property_id}", response_model=PropertyRead)
def get_property(
    property_id: int,
    membership: Membership = Depends(get_current_membership),
    db: Session = Depends(get_db),
) -> Property:
    return get_owned_property(db, membership, property_id)


@app.put("/properties/{property_id}", response_model=PropertyRead)
def update_property(
    property_id: int,
    property_update: PropertyUpdate,
    membership: Membership = Depends(require_manager),
    db: Session = Depends(get_db),
) -> Property:
    prop = get_owned_property(db, membership, property_id)
    for key, value in property_update.model_dump(exclude_unset=True).items():
        setattr(prop, key, value)
    db.commit()
    db.refresh(prop)
    return prop


@app.delete("/properties/{property_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_property(
    property_id: int,
    membership: Membership = Depends(allow_roles(MembershipRole.OWNER, MembershipRole.ADMIN)),
    db: Session = Depends(get_db),
) -> None:
    prop = get_owned_property(db, membership, property_id)
    db.query(User).filter(User.last_active_property_id == property_id).update(
        {User.last_active_property_id: None}, synchronize_session=False
    )
    db.delete(prop)
    db.commit()


@app.get("/properties/{property_id}/settings", response_model=PropertySettingsRead)
def get_property_settings(
    property_id: int,
    membership: Membership = Depends(get_current_membership),
    db: Session = Depends(get_db),
) -> PropertySettings:
    prop = get_owned_property(db, membership, property_id)
    property_settings = _settings_for(db, prop)
    db.commit()
    return property_settings


@app.put("/properties/{property_id}/settings", response_model=PropertySettingsRead)
def update_property_settings(
    property_id: int,
    settings_update: PropertySettingsUpdate,
    membership: Membership = Depends(require_manager),
    db: Session = Depends(get_db),
) -> PropertySettings:
    prop = get_owned_property(db, membership, property_id)
    property_settings = _settings_for(db, prop)
    for key, value in settings_update.model_dump(exclude_unset=True).items():
        if value is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"{key} cannot be null")
        setattr(property_settings, key, value)
    db.commit()
    db.refresh(property_settings)
    return property_settings
