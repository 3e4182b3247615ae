from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from common import auth
from common.availability import PricingType
from common.config import get_settings
from common.database import Base, engine, get_db
from common.dependencies import get_current_active_user, get_current_membership, Membership
from common.errors import register_error_handlers
from common.logging_middleware import add_audit_middleware
from common.models import MembershipRole, Organisation, Property, Room, User, UserOrganisation, UserPreferences
from common.rate_limit import apply_rate_limiter, limiter
from common.schemas import (
    LastActivePropertyRead,
    LastActivePropertyUpdate,
    PreferencesRead,
    PreferencesUpdate,
    PropertyRead,
    RoomRead,
    Token,
    UserCreate,
    UserRead,
)

settings = get_settings()


@asynccontextmanager
async def lifespan(_: FastAPI):
    if settings.run_db_migrations:
        Base.metadata.create_all(bind=engine)
    yield


def create_app() -> FastAPI:
    fastapi_app = FastAPI(title="Users Service", version="0.3.0", lifespan=lifespan)
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    apply_rate_limiter(fastapi_app)
    add_audit_middleware(fastapi_app, "users")
    register_error_handlers(fastapi_app)
    return fastapi_app


app = create_app()


class OnboardingRequest(BaseModel):
    organization_name: str = Field(..., min_length=1, max_length=150)
    preferred_language: str = Field("fr", pattern="^(fr|en)$")
    establishment_type: str = Field("hotel", pattern="^(hotel|espace)$")
    property_name: str = Field(..., min_length=1, max_length=150)
    property_address: Optional[str] = Field(None, max_length=255)
    property_type: str = Field("hotel", max_length=30)
    unit_name: str = Field(..., min_length=1, max_length=100)
    capacity: Optional[int] = Field(None, ge=1)
    price_per_night: Optional[Decimal] = Field(None, ge=0)


class OnboardingResult(BaseModel):
    message: str
    property: PropertyRead
    room: RoomRead


def _preferences_for(db: Session, user: User) -> UserPreferences:
    preferences = db.query(UserPreferences).filter(UserPreferences.user_id == user.id).first()
    if preferences is None:
        preferences = UserPreferences(user_id=user.id, currency=settings.default_currency)
        db.add(preferences)
        db.flush()
    return preferences


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok", "service": "users"}


@app.post("/users/register", response_model=UserRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("5/minute")
def register_user(request: Request, user_in: UserCreate, db: Session = Depends(get_db)) -> User:
    email = user_in.email.lower()
    if db.query(User).filter(User.email == email).first():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already registered")

    user = User(name=user_in.name, email=email, hashed_password=auth.get_password_hash(user_in.password))
    db.add(user)
    db.flush()
    organisation = Organisation(name=f"{user_in.name}'s organisation", owner_id=user.id)
    db.add(organisation)
    db.flush()
    db.add(UserOrganisation(user_id=user.id, organisation_id=organisation.id, role=MembershipRole.OWNER))
    db.add(UserPreferences(user_id=user.id, currency=settings.default_currency))
    user.active_organisation_id = organisation.id
    db.commit()
    db.refresh(user)
    return user


@app.post("/users/login", response_model=Token)
@limiter.limit("10/minute")
def login(request: Request, form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)) -> Token:
    user = auth.authenticate_user(db, form_data.username, form_data.password)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Incorrect email or password")
    return Token(access_token=auth.issue_user_token(user))


@app.get("/users/me", response_model=UserRead)
def read_me(current_user: User = Depends(get_current_active_user)) -> User:
    return current_user


@app.get("/users/me/preferences", response_model=PreferencesRead)
def read_preferences(current_user: User = Depends(get_current_active_user), db: Session = Depends(get_db)) -> UserPreferences:
    preferences = _preferences_for(db, current_user)
    db.commit()
    return preferences


@app.put("/users/me/preferences", response_model=PreferencesRead)
def update_preferences(
    preferences_in: PreferencesUpdate,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> UserPreferences:
    preferences = _preferences_for(db, current_user)
    for key, value in preferences_in.model_dump(exclude_none=True).items():
        setattr(preferences, key, value)
    db.commit()
    db.refresh(preferences)
    return preferences


@app.get("/users/me/last-active-property", response_model=LastActivePropertyRead)
def read_last_active_property(
    membership: Membership = Depends(get_current_membership),
    db: Session = Depends(get_db),
) -> LastActivePropertyRead:
    user = membership.user
    property_id = user.last_active_property_id
    if property_id is not None:
        visible = (
            db.query(Property.id)
            .filter(Property.id == property_id, Property.organisation_id == membership.organisation_id)
            .first()
        )
        if visible is None:
            # property deleted or belongs to another organisation
            user.last_active_property_id = None
            db.commit()
            property_id = None
    return LastActivePropertyRead(property_id=property_id)


@app.put("/users/me/last-active-property", response_model=LastActivePropertyRead)
def update_last_active_property(
    payload: LastActivePropertyUpdate,
    membership: Membership = Depends(get_current_membership),
    db: Session = Depends(get_db),
) -> LastActivePropertyRead:
    if payload.property_id is not None:
        visible = (
            db.query(Property.id)
            .filter(Property.id == payload.property_id, Property.organisation_id == membership.organisation_id)
            .first()
        )
        if visible is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Property not found")
    membership.user.last_active_property_id = payload.property_id
    db.commit()
    return LastActivePropertyRead(property_id=payload.property_id)


@app.post("/users/me/onboarding", response_model=OnboardingResult)
def complete_onboarding(
    payload: OnboardingRequest,
    membership: Membership = Depends(get_current_membership),
    db: Session = Depends(get_db),
) -> OnboardingResult:
    if membership.role not in {MembershipRole.OWNER, MembershipRole.ADMIN}:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")

    membership.organisation.name = payload.organization_name
    preferences = _preferences_for(db, membership.user)
    preferences.establishment_type = payload.establishment_type
    preferences.preferred_language = payload.preferred_language

    prop = Property(
        organisation_id=membership.organisation_id,
        name=payload.property_name,
        address=payload.property_address,
        property_type=payload.property_type,
    )
    db.add(prop)
    db.flush()
    room = Room(
        property_id=prop.id,
        name=payload.unit_name,
        capacity=payload.capacity,
        price_per_night=payload.price_per_night,
        pricing_type=PricingType.NIGHT if payload.establishment_type == "hotel" else PricingType.HOUR,
    )
    db.add(room)
    membership.user.onboarding_completed = True
    membership.user.last_active_property_id = prop.id
    db.commit()
    db.refresh(prop)
    db.refresh(room)
    return OnboardingResult(
        message="Onboarding completed",
        property=PropertyRead.model_validate(prop),
        room=RoomRead.model_validate(room),
    )


@app.post("/users/me/onboarding/reset", response_model=UserRead)
def reset_onboarding(current_user: User = Depends(get_current_active_user), db: Session = Depends(get_db)) -> User:
    current_user.onboarding_completed = False
    db.commit()
    db.refresh(current_user)
    return current_user
