"""Reusable FastAPI dependencies for auth, tenancy and ownership checks."""
from dataclasses import dataclass
from typing import Callable

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from .auth import decode_token
from .database import get_db
from .models import MembershipRole, Organisation, Property, Reservation, Room, User, UserOrganisation

oauth_scheme = OAuth2PasswordBearer(tokenUrl="/users/login")

MANAGING_ROLES = {MembershipRole.OWNER, MembershipRole.ADMIN, MembershipRole.MANAGER}


@dataclass
class Membership:
    user: User
    organisation: Organisation
    role: MembershipRole

    @property
    def organisation_id(self) -> int:
        return self.organisation.id

    @property
    def can_manage(self) -> bool:
        return self.role in MANAGING_ROLES


def get_current_user(token: str = Depends(oauth_scheme), db: Session = Depends(get_db)) -> User:
    payload = decode_token(token)
    email: str | None = payload.get("sub")
    if email is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing subject in token")
    user = db.query(User).filter(User.email == email).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user


def get_current_active_user(current_user: User = Depends(get_current_user)) -> User:
    return current_user


def resolve_membership(db: Session, user: User) -> Membership | None:
    """Return the caller's active membership, falling back to the oldest one."""

    query = db.query(UserOrganisation).filter(UserOrganisation.user_id == user.id)
    link = None
    if user.active_organisation_id is not None:
        link = query.filter(UserOrganisation.organisation_id == user.active_organisation_id).first()
    if link is None:
        link = query.order_by(UserOrganisation.created_at.asc(), UserOrganisation.id.asc()).first()
    if link is None:
        return None
    return Membership(user=user, organisation=link.organisation, role=link.role)


def get_current_membership(
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> Membership:
    membership = resolve_membership(db, current_user)
    if membership is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Organisation not found")
    return membership


def require_manager(membership: Membership = Depends(get_current_membership)) -> Membership:
    if not membership.can_manage:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
    return membership


def allow_roles(*roles: MembershipRole) -> Callable[[Membership], Membership]:
    def dependency(membership: Membership = Depends(get_current_membership)) -> Membership:
        if membership.role not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return membership

    return dependency


def get_owned_property(db: Session, membership: Membership, property_id: int) -> Property:
    prop = (
        db.query(Property)
        .filter(Property.id == property_id, Property.organisation_id == membership.organisation_id)
        .first()
    )
    if not prop:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Property not found")
    return prop


def get_owned_room(db: Session, membership: Membership, room_id: int) -> Room:
    room = (
        db.query(Room)
        .join(Property, Room.property_id == Property.id)
        .filter(Room.id == room_id, Property.organisation_id == membership.organisation_id)
        .first()
    )
    if not room:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Room not found or not authorised")
    return room


def get_owned_reservation(db: Session, membership: Membership, reservation_id: int) -> Reservation:
    reservation = (
        db.query(Reservation)
        .join(Room, Reservation.room_id == Room.id)
        .join(Property, Room.property_id == Property.id)
        .filter(Reservation.id == reservation_id, Property.organisation_id == membership.organisation_id)
        .first()
    )
    if not reservation:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Reservation not found")
    return reservation
