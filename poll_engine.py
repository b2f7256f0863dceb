"""Polls: creation, one-vote-per-account upsert and live tallies.

Vote counts are never stored on options. Every read counts ``poll_votes``
rows, so results always match the votes as of that read.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from database import dialect_insert
from errors import Conflict, NotFound, ValidationFailed
from models import Poll, PollOption, PollVote, User

logger = logging.getLogger(__name__)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; treat them as UTC
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_open(poll: Poll, now: Optional[datetime] = None) -> bool:
    """Open while active and not yet at its expiry."""
    if not poll.is_active:
        return False
    expires_at = _as_utc(poll.expires_at)
    if expires_at is None:
        return True
    now = _as_utc(now) if now else datetime.now(timezone.utc)
    return now < expires_at


def percentage(count: int, total: int) -> float:
    if total == 0:
        return 0
    return round(count / total * 100, 2)


def create_poll(
    db: Session,
    created_by: str,
    question: str,
    options: List[str],
    description: Optional[str] = None,
    expires_at: Optional[datetime] = None,
) -> Poll:
    """Persist the poll and its options in one transaction."""
    if len(options) < 2:
        raise ValidationFailed("At least 2 options required",
                               details=[{"field": "options", "message": "At least 2 options required"}])
    poll = Poll(
        question=question,
        description=description,
        created_by=created_by,
        expires_at=_as_utc(expires_at),
    )
    for position, text in enumerate(options):
        poll.options.append(PollOption(option_text=text.strip(), position=position))
    db.add(poll)
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(poll)
    logger.info(f"Poll {poll.id} created by {created_by} with {len(options)} options")
    return poll


def cast_vote(db: Session, poll_id: str, option_id: str, user_id: str) -> None:
    """Record ``user_id``'s vote, replacing any earlier vote on the poll.

    A single INSERT ... ON CONFLICT (poll_id, user_id) DO UPDATE, so two
    concurrent first votes from one account still leave exactly one row.
    """
    poll = db.query(Poll).filter(Poll.id == poll_id).first()
    if poll is None:
        raise NotFound("Poll not found")
    if not is_open(poll):
        raise Conflict("Poll is closed", reason="poll_closed")
    option = db.query(PollOption.id).filter(
        PollOption.id == option_id, PollOption.poll_id == poll_id
    ).first()
    if option is None:
        raise ValidationFailed(
            "Option does not belong to this poll",
            reason="poll_option_mismatch",
            details=[{"field": "option_id", "message": "Option does not belong to this poll"}],
        )

    stmt = dialect_insert(db, PollVote).values(
        id=str(uuid.uuid4()),
        poll_id=poll_id,
        option_id=option_id,
        user_id=user_id,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["poll_id", "user_id"],
        set_={"option_id": stmt.excluded.option_id, "updated_at": func.now()},
    )
    db.execute(stmt)
    db.commit()


def tally(db: Session, poll_id: str):
    """Return ``[(option, vote_count), ...]`` in creation order and the total."""
    rows = (
        db.query(PollOption, func.count(PollVote.id))
        .outerjoin(PollVote, PollVote.option_id == PollOption.id)
        .filter(PollOption.poll_id == poll_id)
        .group_by(PollOption.id)
        .order_by(PollOption.position, PollOption.created_at)
        .all()
    )
    total = db.query(func.count(PollVote.id)).filter(PollVote.poll_id == poll_id).scalar() or 0
    return rows, total


def serialize(db: Session, poll: Poll, creator: Optional[User] = None) -> dict:
    rows, total = tally(db, poll.id)
    if creator is None and poll.created_by:
        creator = db.query(User).filter(User.id == poll.created_by).first()
    return {
        "id": poll.id,
        "question": poll.question,
        "description": poll.description,
        "created_by": poll.created_by,
        "creator_username": creator.username if creator else None,
        "expires_at": poll.expires_at,
        "is_active": poll.is_active,
        "is_open": is_open(poll),
        "created_at": poll.created_at,
        "total_votes": total,
        "options": [
            {
                "id": option.id,
                "option_text": option.option_text,
                "vote_count": count,
                "vote_percentage": percentage(count, total),
            }
            for option, count in rows
        ],
    }


def get_results(db: Session, poll_id: str) -> dict:
    poll = db.query(Poll).filter(Poll.id == poll_id).first()
    if poll is None:
        raise NotFound("Poll not found")
    return serialize(db, poll)


def list_polls(db: Session) -> List[dict]:
    polls = (
        db.query(Poll)
        .filter(Poll.is_active.is_(True))
        .order_by(Poll.created_at.desc(), Poll.seq.desc())
        .all()
    )
    return [serialize(db, poll) for poll in polls]


def delete_poll(db: Session, poll_id: str) -> None:
    # Options and votes go with it through ON DELETE CASCADE
    db.query(Poll).filter(Poll.id == poll_id).delete(synchronize_session=False)
    db.commit()
    logger.info(f"Poll {poll_id} deleted")
