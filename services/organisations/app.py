from contextlib import asynccontextmanager
from typing import List

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from common.config import get_settings
from common.database import Base, engine, get_db
from common.dependencies import get_current_active_user
from common.errors import register_error_handlers
from common.logging_middleware import add_audit_middleware
from common.models import MembershipRole, Organisation, User, UserOrganisation
from common.rate_limit import apply_rate_limiter, limiter
from common.schemas import (
    InviteRequest,
    MemberRead,
    MembershipRead,
    OrganisationCreate,
    OrganisationRead,
    OrganisationUpdate,
    SwitchOrganisationRequest,
)

settings = get_settings()

EDITOR_ROLES = {MembershipRole.OWNER, MembershipRole.ADMIN}


@asynccontextmanager
async def lifespan(_: FastAPI):
    if settings.run_db_migrations:
        Base.metadata.create_all(bind=engine)
    yield


def create_app() -> FastAPI:
    fastapi_app = FastAPI(title="Organisations Service", version="0.3.0", lifespan=lifespan)
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    apply_rate_limiter(fastapi_app)
    add_audit_middleware(fastapi_app, "organisations")
    register_error_handlers(fastapi_app)
    return fastapi_app


app = create_app()


def _membership(db: Session, user: User, organisation_id: int) -> UserOrganisation:
    link = (
        db.query(UserOrganisation)
        .filter(UserOrganisation.user_id == user.id, UserOrganisation.organisation_id == organisation_id)
        .first()
    )
    if not link:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Organisation not found")
    return link


def _active_organisation_id(db: Session, user: User) -> int | None:
    if user.active_organisation_id is not None:
        return user.active_organisation_id
    link = (
        db.query(UserOrganisation)
        .filter(UserOrganisation.user_id == user.id)
        .order_by(UserOrganisation.created_at.asc(), UserOrganisation.id.asc())
        .first()
    )
    return link.organisation_id if link else None


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok", "service": "organisations"}


@app.get("/organisations", response_model=List[MembershipRead])
def list_organisations(
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> List[MembershipRead]:
    active_id = _active_organisation_id(db, current_user)
    links = (
        db.query(UserOrganisation)
        .filter(UserOrganisation.user_id == current_user.id)
        .order_by(UserOrganisation.created_at.asc())
        .all()
    )
    return [
        MembershipRead(
            organisation=OrganisationRead.model_validate(link.organisation),
            role=link.role,
            is_active=link.organisation_id == active_id,
        )
        for link in links
    ]


@app.post("/organisations", response_model=OrganisationRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
def create_organisation(
    request: Request,
    organisation_in: OrganisationCreate,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> Organisation:
    organisation = Organisation(
        name=organisation_in.name.strip(),
        description=organisation_in.description,
        owner_id=current_user.id,
    )
    db.add(organisation)
    db.flush()
    db.add(UserOrganisation(user_id=current_user.id, organisation_id=organisation.id, role=MembershipRole.OWNER))
    db.commit()
    db.refresh(organisation)
    return organisation


@app.get("/organisations/{organisation_id}", response_model=OrganisationRead)
def get_organisation(
    organisation_id: int,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> Organisation:
    return _membership(db, current_user, organisation_id).organisation


@app.get("/organisations/{organisation_id}/members", response_model=List[MemberRead])
def list_members(
    organisation_id: int,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> List[MemberRead]:
    organisation = _membership(db, current_user, organisation_id).organisation
    return [
        MemberRead(user_id=link.user.id, name=link.user.name, email=link.user.email, role=link.role)
        for link in organisation.memberships
    ]


@app.put("/organisations/{organisation_id}", response_model=OrganisationRead)
def update_organisation(
    organisation_id: int,
    organisation_update: OrganisationUpdate,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> Organisation:
    link = _membership(db, current_user, organisation_id)
    if link.role not in EDITOR_ROLES:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
    organisation = link.organisation
    for key, value in organisation_update.model_dump(exclude_unset=True).items():
        setattr(organisation, key, value)
    db.commit()
    db.refresh(organisation)
    return organisation


@app.delete("/organisations/{organisation_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_organisation(
    organisation_id: int,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> None:
    link = _membership(db, current_user, organisation_id)
    if link.role is not MembershipRole.OWNER:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the owner can delete an organisation")
    db.query(User).filter(User.active_organisation_id == organisation_id).update(
        {User.active_organisation_id: None}, synchronize_session=False
    )
    db.delete(link.organisation)
    db.commit()


@app.post("/organisations/invite", response_model=MemberRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
def invite_member(
    request: Request,
    invite: InviteRequest,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> MemberRead:
    link = _membership(db, current_user, invite.organisation_id)
    if link.role not in EDITOR_ROLES:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
    invitee = db.query(User).filter(User.email == invite.email.lower()).first()
    if not invitee:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No account registered with this email")
    already = (
        db.query(UserOrganisation)
        .filter(UserOrganisation.user_id == invitee.id, UserOrganisation.organisation_id == invite.organisation_id)
        .first()
    )
    if already:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User is already a member")
    db.add(UserOrganisation(user_id=invitee.id, organisation_id=invite.organisation_id, role=invite.role))
    db.commit()
    return MemberRead(user_id=invitee.id, name=invitee.name, email=invitee.email, role=invite.role)


@app.post("/organisations/switch", response_model=OrganisationRead)
def switch_organisation(
    payload: SwitchOrganisationRequest,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> Organisation:
    link = _membership(db, current_user, payload.organisation_id)
    current_user.active_organisation_id = link.organisation_id
    current_user.last_active_property_id = None
    db.commit()
    return link.organisation


@app.post("/organisations/{organisation_id}/leave", status_code=status.HTTP_204_NO_CONTENT)
def leave_organisation(
    organisation_id: int,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> None:
    link = _membership(db, current_user, organisation_id)
    if link.organisation.owner_id == current_user.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="The owner cannot leave the organisation")
    remaining = db.query(UserOrganisation).filter(UserOrganisation.user_id == current_user.id).count()
    if remaining <= 1:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot leave your only organisation")
    db.delete(link)
    if current_user.active_organisation_id == organisation_id:
        current_user.active_organisation_id = None
        current_user.last_active_property_id = None
    db.commit()
