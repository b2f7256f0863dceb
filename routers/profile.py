import logging
from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from authorization import AuthorizationEngine, Identity
from crud import column_values, exists, to_dict
from database import get_db
from dependencies import get_authorizer, get_current_identity, get_optional_identity, require
from errors import Conflict, NotFound
from models import (
    AttendeeStatus, Connection, ConnectionStatus, Event, EventAttendee,
    User, UserAddress, UserProfile, UserSocials,
)
from schemas import ADDRESS_COLUMNS, PROFILE_COLUMNS, SOCIALS_COLUMNS, ProfileFields

logger = logging.getLogger(__name__)

router = APIRouter()

PUBLIC_PROFILE_FIELDS = ("firstname", "lastname", "middlename", "about",
                         "occupation", "date_of_birth", "gender")


def _full_name(user: User, profile: Optional[UserProfile]) -> str:
    if profile and profile.firstname and profile.lastname:
        parts = [profile.firstname, profile.middlename, profile.lastname]
        return " ".join(part for part in parts if part)
    return user.username


def _location(address: Optional[UserAddress]) -> Optional[str]:
    if address and address.county:
        if address.post_code:
            return f"{address.county}, {address.post_code}"
        return address.county
    return None


def _member_since(user: User) -> str:
    return str(user.created_at.year) if user.created_at else "Unknown"


def _record(obj, exclude=("id", "user_id", "created_at", "updated_at")) -> dict:
    if obj is None:
        return {}
    return {key: value for key, value in to_dict(obj).items() if key not in exclude}


def _find_connection(db: Session, first_id: str, second_id: str) -> Optional[Connection]:
    return db.query(Connection).filter(
        Connection.pair_key == Connection.make_pair_key(first_id, second_id)
    ).first()


def _accepted_count(db: Session, user_id: str) -> int:
    return db.query(func.count(Connection.id)).filter(
        or_(Connection.user_id == user_id, Connection.connected_user_id == user_id),
        Connection.status == ConnectionStatus.ACCEPTED,
    ).scalar() or 0


@router.get("/profile/connections/pending")
async def pending_connections(
    identity: Identity = Depends(require("connections:manage")),
    db: Session = Depends(get_db)
):
    """Incoming connection requests waiting for the caller's answer."""
    rows = (
        db.query(Connection, User.username, User.email)
        .join(User, Connection.user_id == User.id)
        .filter(
            Connection.connected_user_id == identity.id,
            Connection.status == ConnectionStatus.PENDING,
        )
        .all()
    )
    return {
        "requests": [
            dict(to_dict(connection), username=username, email=email)
            for connection, username, email in rows
        ]
    }


@router.get("/profile/{identifier}")
async def get_profile(
    identifier: str,
    viewer: Optional[Identity] = Depends(get_optional_identity),
    authorizer: AuthorizationEngine = Depends(get_authorizer),
    db: Session = Depends(get_db)
):
    """View a profile by account id or username.

    Anyone may read it; email, phone number, address and the full profile
    record are only included for the owner, Admins and Presidents.
    """
    user = db.query(User).filter(User.id == identifier).first()
    if user is None:
        user = db.query(User).filter(User.username == identifier).first()
    if user is None:
        raise NotFound("User not found", identifier=identifier)

    profile = db.query(UserProfile).filter(UserProfile.user_id == user.id).first()
    socials = db.query(UserSocials).filter(UserSocials.user_id == user.id).first()
    address = db.query(UserAddress).filter(UserAddress.user_id == user.id).first()
    events_hosted = db.query(func.count(Event.id)).filter(Event.event_host == user.id).scalar() or 0
    events_attended = db.query(func.count(EventAttendee.id)).filter(
        EventAttendee.user_id == user.id,
        EventAttendee.status == AttendeeStatus.CHECKED_IN,
    ).scalar() or 0
    connection = _find_connection(db, viewer.id, user.id) if viewer else None

    can_view_private = authorizer.can_view_private(viewer, user.id)
    profile_data = _record(profile)

    response = {
        "id": user.id,
        "name": _full_name(user, profile),
        "title": (profile.occupation if profile else None) or user.role.value,
        "location": _location(address) or "Not specified",
        "memberSince": _member_since(user),
        "bio": (profile.about if profile else None) or "No bio available.",
        "eventsAttended": events_attended,
        "eventsHosted": events_hosted,
        "connections": _accepted_count(db, user.id),
        "connectionStatus": connection.status.value if connection else None,
        "isConnected": bool(connection and connection.status == ConnectionStatus.ACCEPTED),
        "user": {
            "id": user.id,
            "username": user.username,
            "role": user.role.value,
        },
        "socials": _record(socials),
    }
    if can_view_private:
        response["email"] = user.email
        response["phone"] = profile.phone_number if profile else None
        response["user"]["email"] = user.email
        response["profile"] = profile_data
        response["address"] = _record(address)
    else:
        response["profile"] = {key: profile_data.get(key) for key in PUBLIC_PROFILE_FIELDS}
    return response


@router.post("/profile", status_code=status.HTTP_201_CREATED)
async def create_profile(
    fields: ProfileFields,
    identity: Identity = Depends(require("profile:create")),
    db: Session = Depends(get_db)
):
    """Create the caller's profile, socials and address together."""
    if db.query(UserProfile.id).filter(UserProfile.user_id == identity.id).first():
        raise Conflict("Profile already exists. Use PUT to update.",
                       reason="profile_exists", status_code=400)

    data = column_values(fields.model_dump())
    db.add(UserProfile(user_id=identity.id, **{key: data[key] for key in PROFILE_COLUMNS}))
    db.add(UserSocials(user_id=identity.id, **{key: data[key] for key in SOCIALS_COLUMNS}))
    db.add(UserAddress(user_id=identity.id, **{key: data[key] for key in ADDRESS_COLUMNS}))
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict("Profile already exists. Use PUT to update.",
                       reason="profile_exists", status_code=400)
    logger.info(f"Profile created for {identity.id}")
    return {"message": "Profile created successfully"}


@router.put("/profile/{username}")
async def update_profile(
    username: str,
    fields: ProfileFields,
    identity: Identity = Depends(get_current_identity),
    authorizer: AuthorizationEngine = Depends(get_authorizer),
    db: Session = Depends(get_db)
):
    target = db.query(User).filter(User.username == username).first()
    if target is None:
        raise NotFound("User not found")
    authorizer.enforce(identity, "profile:update", owner_id=target.id)

    update_data = column_values(fields.model_dump(exclude_unset=True))
    if not update_data:
        return {"message": "No profile fields to update", "updated": False}

    # Rows missing from an older signup are created on first edit
    for model, columns in ((UserProfile, PROFILE_COLUMNS),
                           (UserSocials, SOCIALS_COLUMNS),
                           (UserAddress, ADDRESS_COLUMNS)):
        changes = {key: value for key, value in update_data.items() if key in columns}
        if not changes:
            continue
        row = db.query(model).filter(model.user_id == target.id).first()
        if row is None:
            row = model(user_id=target.id)
            db.add(row)
        for key, value in changes.items():
            setattr(row, key, value)
    db.commit()
    return {"message": "Profile updated successfully", "updated": True}


@router.post("/profile/connect/{user_id}")
async def request_connection(
    user_id: str,
    identity: Identity = Depends(require("connections:manage")),
    db: Session = Depends(get_db)
):
    if identity.id == user_id:
        raise Conflict("Cannot connect to yourself", reason="self_connection", status_code=400)
    if not exists(db, User, user_id):
        raise NotFound("User not found")

    existing = _find_connection(db, identity.id, user_id)
    if existing:
        messages = {
            ConnectionStatus.ACCEPTED: ("Already connected", "already_connected"),
            ConnectionStatus.PENDING: ("Connection request already sent", "request_pending"),
            ConnectionStatus.BLOCKED: ("Connection is blocked", "connection_blocked"),
        }
        message, reason = messages[existing.status]
        raise Conflict(message, reason=reason, status_code=400)

    connection = Connection(
        user_id=identity.id,
        connected_user_id=user_id,
        pair_key=Connection.make_pair_key(identity.id, user_id),
        status=ConnectionStatus.PENDING,
    )
    db.add(connection)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict("Connection request already sent", reason="request_pending", status_code=400)
    db.refresh(connection)
    return {"message": "Connection request sent", "connection": to_dict(connection)}


@router.post("/profile/connect/{user_id}/accept")
async def accept_connection(
    user_id: str,
    identity: Identity = Depends(require("connections:manage")),
    db: Session = Depends(get_db)
):
    """Accept a pending request that ``user_id`` sent to the caller."""
    connection = db.query(Connection).filter(
        Connection.user_id == user_id,
        Connection.connected_user_id == identity.id,
        Connection.status == ConnectionStatus.PENDING,
    ).first()
    if connection is None:
        raise NotFound("Connection request not found")
    connection.status = ConnectionStatus.ACCEPTED
    db.commit()
    db.refresh(connection)
    return {"message": "Connection accepted", "connection": to_dict(connection)}


@router.delete("/profile/connect/{user_id}")
async def remove_connection(
    user_id: str,
    identity: Identity = Depends(require("connections:manage")),
    db: Session = Depends(get_db)
):
    connection = _find_connection(db, identity.id, user_id)
    if connection is None:
        raise NotFound("Connection not found")
    db.delete(connection)
    db.commit()
    return {"message": "Connection removed"}


@router.get("/users")
async def network(
    identity: Identity = Depends(require("users:network")),
    db: Session = Depends(get_db)
):
    """Directory of every account for the network page."""
    users = db.query(User).order_by(User.created_at.desc(), User.seq.desc()).all()
    ids = [user.id for user in users]
    profiles = {p.user_id: p for p in db.query(UserProfile).filter(UserProfile.user_id.in_(ids))}
    addresses = {a.user_id: a for a in db.query(UserAddress).filter(UserAddress.user_id.in_(ids))}
    return [
        {
            "id": user.id,
            "name": _full_name(user, profiles.get(user.id)),
            "title": (profiles[user.id].occupation if user.id in profiles else None) or user.role.value,
            "location": _location(addresses.get(user.id)) or "Not specified",
            "memberSince": _member_since(user),
        }
        for user in users
    ]
