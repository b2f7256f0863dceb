import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from authorization import Identity
from crud import apply_partial_update, exists, get_or_404, paginate, to_dict, usernames_for
from database import dialect_insert, get_db
from dependencies import get_optional_identity, require
from errors import NotFound
from models import AttendeeStatus, Event, EventAttendee, User
from schemas import EventCreate, EventUpdate, User as UserSchema

logger = logging.getLogger(__name__)

router = APIRouter()


def _host_exists(db: Session, host_id: Optional[str]) -> bool:
    return bool(host_id) and exists(db, User, host_id)


def _serialize(event: Event, accounts: dict) -> dict:
    """Join the host's username/email; a host account that no longer
    exists falls back to the free-text host name."""
    data = to_dict(event)
    username, email = accounts.get(event.event_host, (None, None))
    data["host_username"] = username
    data["host_email"] = email
    data["host"] = username or event.event_host_name
    return data


def _attendee_counts(db: Session, event_id: str) -> dict:
    rows = (
        db.query(EventAttendee.status, func.count(EventAttendee.id))
        .filter(EventAttendee.event_id == event_id)
        .group_by(EventAttendee.status)
        .all()
    )
    counts = {status_: count for status_, count in rows}
    checked_in = counts.get(AttendeeStatus.CHECKED_IN, 0)
    return {
        "registered_count": counts.get(AttendeeStatus.REGISTERED, 0) + checked_in,
        "checked_in_count": checked_in,
    }


def _upsert_attendee(db: Session, event_id: str, user_id: str, values: dict) -> EventAttendee:
    """Insert or overwrite the single attendee row for (event, account)."""
    stmt = dialect_insert(db, EventAttendee).values(
        id=str(uuid.uuid4()), event_id=event_id, user_id=user_id, **values
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["event_id", "user_id"],
        set_=dict(values, updated_at=func.now()),
    )
    db.execute(stmt)
    db.commit()
    return db.query(EventAttendee).filter(
        EventAttendee.event_id == event_id, EventAttendee.user_id == user_id
    ).populate_existing().first()


@router.get("/events/users")
async def list_hosts(
    identity: Identity = Depends(require("events:list_hosts")),
    db: Session = Depends(get_db)
):
    """Accounts to choose an event host from (Admin & Secretary only)."""
    users = db.query(User).order_by(User.created_at.desc(), User.seq.desc()).all()
    return {"users": [UserSchema.model_validate(user) for user in users]}


@router.get("/events", dependencies=[Depends(get_optional_identity)])
async def get_events(
    page: int = 1,
    limit: int = 10,
    db: Session = Depends(get_db)
):
    """
    Get paginated list of events
    - page: page number, starting at 1
    - limit: events per page (max 100)
    """
    query = db.query(Event).order_by(
        Event.event_date.desc(), Event.event_time.desc(),
        Event.created_at.desc(), Event.seq.desc(),
    )
    events, pagination = paginate(query, page, limit)
    accounts = usernames_for(db, [event.event_host for event in events])
    return {
        "events": [_serialize(event, accounts) for event in events],
        "pagination": pagination,
    }


@router.get("/events/{event_id}", dependencies=[Depends(get_optional_identity)])
async def get_event(
    event_id: str,
    db: Session = Depends(get_db)
):
    event = get_or_404(db, Event, event_id, "Event")
    data = _serialize(event, usernames_for(db, [event.event_host]))
    data.update(_attendee_counts(db, event.id))
    return {"event": data}


@router.post("/events", status_code=status.HTTP_201_CREATED)
async def create_event(
    event_data: EventCreate,
    identity: Identity = Depends(require("events:create")),
    db: Session = Depends(get_db)
):
    """Create a new event (Admin & Secretary only)"""
    host_id = None
    host_name = event_data.event_host_name or None

    if event_data.event_host:
        if _host_exists(db, event_data.event_host):
            host_id = event_data.event_host
        else:
            # Unknown account: keep what was typed as the host's name
            host_name = event_data.event_host_name or event_data.event_host
    elif not host_name:
        host_id = identity.id

    if host_id:
        host_name = None

    db_event = Event(
        event_name=event_data.event_name,
        event_address=event_data.event_address,
        event_time=event_data.event_time,
        event_date=event_data.event_date,
        event_description=event_data.event_description,
        event_host=host_id,
        event_host_name=host_name,
    )
    db.add(db_event)
    db.commit()
    db.refresh(db_event)
    logger.info(f"Event {db_event.id} created by {identity.id}")

    return {
        "message": "Event created successfully",
        "event": _serialize(db_event, usernames_for(db, [db_event.event_host])),
    }


@router.put("/events/{event_id}")
async def update_event(
    event_id: str,
    event_update: EventUpdate,
    identity: Identity = Depends(require("events:update")),
    db: Session = Depends(get_db)
):
    """Update an event (Admin & Secretary only). Only the provided fields change."""
    event = get_or_404(db, Event, event_id, "Event")

    update_data = event_update.model_dump(exclude_unset=True)
    host_given = "event_host" in update_data
    host_name_given = "event_host_name" in update_data
    host = update_data.pop("event_host", None)
    host_name = update_data.pop("event_host_name", None)

    # A resolvable host account clears the free-text name and vice versa
    if host_given:
        if host and _host_exists(db, host):
            update_data["event_host"] = host
            update_data["event_host_name"] = None
        elif host:
            update_data["event_host"] = None
            update_data["event_host_name"] = host_name or host
        else:
            update_data["event_host"] = None
            if host_name_given:
                update_data["event_host_name"] = host_name or None
    elif host_name_given:
        update_data["event_host_name"] = host_name or None

    updated = apply_partial_update(db, event, update_data)
    if updated is None:
        return {"message": "No fields to update", "event": None}
    db.commit()
    db.refresh(event)

    return {
        "message": "Event updated successfully",
        "event": _serialize(event, usernames_for(db, [event.event_host])),
    }


@router.delete("/events/{event_id}")
async def delete_event(
    event_id: str,
    identity: Identity = Depends(require("events:delete")),
    db: Session = Depends(get_db)
):
    """Delete an event (Admin & Secretary only)"""
    get_or_404(db, Event, event_id, "Event")
    db.query(Event).filter(Event.id == event_id).delete(synchronize_session=False)
    db.commit()
    logger.info(f"Event {event_id} deleted by {identity.id}")
    return {"message": "Event deleted successfully"}


@router.post("/events/{event_id}/rsvp")
async def rsvp(
    event_id: str,
    identity: Identity = Depends(require("events:rsvp")),
    db: Session = Depends(get_db)
):
    """Register the caller; a cancelled or checked-in record goes back to registered."""
    get_or_404(db, Event, event_id, "Event")
    attendee = _upsert_attendee(db, event_id, identity.id, {
        "status": AttendeeStatus.REGISTERED.value,
        "checked_in_at": None,
        "checked_in_by": None,
    })
    return {"message": "RSVP recorded", "attendee": to_dict(attendee)}


@router.delete("/events/{event_id}/rsvp")
async def cancel_rsvp(
    event_id: str,
    identity: Identity = Depends(require("events:rsvp")),
    db: Session = Depends(get_db)
):
    attendee = db.query(EventAttendee).filter(
        EventAttendee.event_id == event_id, EventAttendee.user_id == identity.id
    ).first()
    if attendee is None:
        raise NotFound("RSVP not found")
    attendee.status = AttendeeStatus.CANCELLED
    attendee.checked_in_at = None
    attendee.checked_in_by = None
    db.commit()
    db.refresh(attendee)
    return {"message": "RSVP cancelled", "attendee": to_dict(attendee)}


@router.post("/events/{event_id}/check-in/{user_id}")
async def check_in(
    event_id: str,
    user_id: str,
    identity: Identity = Depends(require("events:check_in")),
    db: Session = Depends(get_db)
):
    """Mark an account as attended, creating the record if it never RSVP'd."""
    get_or_404(db, Event, event_id, "Event")
    get_or_404(db, User, user_id, "User")
    attendee = _upsert_attendee(db, event_id, user_id, {
        "status": AttendeeStatus.CHECKED_IN.value,
        "checked_in_at": datetime.now(timezone.utc),
        "checked_in_by": identity.id,
    })
    return {"message": "Attendance confirmed", "attendee": to_dict(attendee)}


@router.get("/events/{event_id}/attendees")
async def list_attendees(
    event_id: str,
    identity: Identity = Depends(require("events:attendees")),
    db: Session = Depends(get_db)
):
    get_or_404(db, Event, event_id, "Event")
    rows = (
        db.query(EventAttendee, User.username, User.email, User.role)
        .join(User, EventAttendee.user_id == User.id)
        .filter(EventAttendee.event_id == event_id)
        .all()
    )
    return {
        "attendees": [
            dict(to_dict(attendee), username=username, email=email, role=role)
            for attendee, username, email, role in rows
        ]
    }
