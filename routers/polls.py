from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

import poll_engine
from authorization import AuthorizationEngine, Identity
from crud import get_or_404
from database import get_db
from dependencies import get_authorizer, get_current_identity, require
from models import Poll
from schemas import PollCreate, VoteCreate

router = APIRouter()


@router.get("/polls")
async def get_polls(db: Session = Depends(get_db)):
    """Active polls, newest first, with live results."""
    return {"polls": poll_engine.list_polls(db)}


@router.get("/polls/{poll_id}")
async def get_poll(poll_id: str, db: Session = Depends(get_db)):
    return {"poll": poll_engine.get_results(db, poll_id)}


@router.post("/polls", status_code=status.HTTP_201_CREATED)
async def create_poll(
    poll_data: PollCreate,
    identity: Identity = Depends(require("polls:create")),
    db: Session = Depends(get_db)
):
    poll = poll_engine.create_poll(
        db,
        created_by=identity.id,
        question=poll_data.question,
        options=poll_data.options,
        description=poll_data.description,
        expires_at=poll_data.expires_at,
    )
    return {"message": "Poll created successfully", "poll": poll_engine.serialize(db, poll)}


@router.post("/polls/{poll_id}/vote")
async def vote(
    poll_id: str,
    vote_data: VoteCreate,
    identity: Identity = Depends(require("polls:vote")),
    db: Session = Depends(get_db)
):
    """Vote on a poll; voting again moves the caller's single vote."""
    poll_engine.cast_vote(db, poll_id, vote_data.option_id, identity.id)
    return {"message": "Vote recorded successfully", "poll": poll_engine.get_results(db, poll_id)}


@router.delete("/polls/{poll_id}")
async def delete_poll(
    poll_id: str,
    identity: Identity = Depends(get_current_identity),
    authorizer: AuthorizationEngine = Depends(get_authorizer),
    db: Session = Depends(get_db)
):
    """Delete a poll with its options and votes (creator or Admin)."""
    poll = get_or_404(db, Poll, poll_id, "Poll")
    authorizer.enforce(identity, "polls:delete", owner_id=poll.created_by)
    poll_engine.delete_poll(db, poll.id)
    return {"message": "Poll deleted successfully"}
