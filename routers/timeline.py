import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from authorization import Identity
from crud import apply_partial_update, column_values, get_or_404, paginate, usernames_for, with_author
from database import get_db
from dependencies import require
from models import TimelinePost
from schemas import TimelineCreate, TimelineUpdate

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/timeline")
async def get_timeline(
    page: int = 1,
    limit: int = 10,
    identity: Identity = Depends(require("timeline:read")),
    db: Session = Depends(get_db)
):
    """Paginated timeline, newest first (signed-in members only)."""
    query = db.query(TimelinePost).order_by(TimelinePost.created_at.desc(), TimelinePost.seq.desc())
    posts, pagination = paginate(query, page, limit)
    accounts = usernames_for(db, [post.author_id for post in posts])
    return {
        "posts": [with_author(post, accounts) for post in posts],
        "pagination": pagination,
    }


@router.get("/timeline/{post_id}")
async def get_timeline_post(
    post_id: str,
    identity: Identity = Depends(require("timeline:read")),
    db: Session = Depends(get_db)
):
    post = get_or_404(db, TimelinePost, post_id, "Timeline post")
    return {"post": with_author(post, usernames_for(db, [post.author_id]))}


@router.post("/timeline", status_code=status.HTTP_201_CREATED)
async def create_timeline_post(
    post_data: TimelineCreate,
    identity: Identity = Depends(require("timeline:create")),
    db: Session = Depends(get_db)
):
    """Create a timeline post (Admin & President only)"""
    post = TimelinePost(author_id=identity.id, **column_values(post_data.model_dump()))
    db.add(post)
    db.commit()
    db.refresh(post)
    logger.info(f"Timeline post {post.id} created by {identity.id}")
    return {
        "message": "Timeline post created successfully",
        "post": with_author(post, usernames_for(db, [post.author_id])),
    }


@router.put("/timeline/{post_id}")
async def update_timeline_post(
    post_id: str,
    post_update: TimelineUpdate,
    identity: Identity = Depends(require("timeline:update")),
    db: Session = Depends(get_db)
):
    post = get_or_404(db, TimelinePost, post_id, "Timeline post")
    updated = apply_partial_update(db, post, post_update.model_dump(exclude_unset=True))
    if updated is None:
        return {"message": "No fields to update", "post": None}
    db.commit()
    db.refresh(post)
    return {
        "message": "Timeline post updated successfully",
        "post": with_author(post, usernames_for(db, [post.author_id])),
    }


@router.delete("/timeline/{post_id}")
async def delete_timeline_post(
    post_id: str,
    identity: Identity = Depends(require("timeline:delete")),
    db: Session = Depends(get_db)
):
    post = get_or_404(db, TimelinePost, post_id, "Timeline post")
    db.delete(post)
    db.commit()
    return {"message": "Timeline post deleted successfully"}
