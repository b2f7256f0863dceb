import logging
from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from authorization import AuthorizationEngine, Identity
from crud import apply_partial_update, get_or_404, paginate, usernames_for, with_author
from database import get_db
from dependencies import get_authorizer, get_optional_identity, require
from errors import NotFound
from models import Blog, Role
from schemas import BlogCreate, BlogUpdate

logger = logging.getLogger(__name__)

router = APIRouter()


def _serialize(blog: Blog, accounts: dict) -> dict:
    data = with_author(blog, accounts)
    data["author"] = data["author_username"]
    return data


@router.get("/blogs")
async def get_blogs(
    page: int = 1,
    limit: int = 10,
    viewer: Optional[Identity] = Depends(get_optional_identity),
    authorizer: AuthorizationEngine = Depends(get_authorizer),
    db: Session = Depends(get_db)
):
    """List blog posts. Admins also see posts still waiting for approval."""
    query = db.query(Blog)
    if not authorizer.authorize(viewer, "blogs:view_unapproved"):
        query = query.filter(Blog.is_available.is_(True))
    query = query.order_by(Blog.created_at.desc(), Blog.seq.desc())

    blogs, pagination = paginate(query, page, limit)
    accounts = usernames_for(db, [blog.author_id for blog in blogs])
    return {
        "blogs": [_serialize(blog, accounts) for blog in blogs],
        "pagination": pagination,
    }


@router.get("/blogs/{blog_id}")
async def get_blog(
    blog_id: str,
    viewer: Optional[Identity] = Depends(get_optional_identity),
    authorizer: AuthorizationEngine = Depends(get_authorizer),
    db: Session = Depends(get_db)
):
    blog = get_or_404(db, Blog, blog_id, "Blog post")
    if not blog.is_available and not authorizer.authorize(viewer, "blogs:view_unapproved"):
        raise NotFound("Blog post not found")
    return {"blog": _serialize(blog, usernames_for(db, [blog.author_id]))}


@router.post("/blogs", status_code=status.HTTP_201_CREATED)
async def create_blog(
    blog_data: BlogCreate,
    identity: Identity = Depends(require("blogs:create")),
    db: Session = Depends(get_db)
):
    """Create a blog post (Admin & Secretary only). Admin posts are approved at once."""
    blog = Blog(
        title=blog_data.title,
        blog_content=blog_data.blog_content,
        author_id=identity.id,
        is_available=identity.role == Role.ADMIN,
    )
    db.add(blog)
    db.commit()
    db.refresh(blog)
    logger.info(f"Blog {blog.id} created by {identity.id} (approved={blog.is_available})")

    return {
        "message": "Blog post created successfully",
        "blog": _serialize(blog, usernames_for(db, [blog.author_id])),
    }


@router.put("/blogs/{blog_id}")
async def update_blog(
    blog_id: str,
    blog_update: BlogUpdate,
    identity: Identity = Depends(require("blogs:update")),
    db: Session = Depends(get_db)
):
    blog = get_or_404(db, Blog, blog_id, "Blog post")
    updated = apply_partial_update(db, blog, blog_update.model_dump(exclude_unset=True))
    if updated is None:
        return {"message": "No fields to update", "blog": None}
    db.commit()
    db.refresh(blog)
    return {
        "message": "Blog post updated successfully",
        "blog": _serialize(blog, usernames_for(db, [blog.author_id])),
    }


@router.delete("/blogs/{blog_id}")
async def delete_blog(
    blog_id: str,
    identity: Identity = Depends(require("blogs:delete")),
    db: Session = Depends(get_db)
):
    blog = get_or_404(db, Blog, blog_id, "Blog post")
    db.delete(blog)
    db.commit()
    return {"message": "Blog post deleted successfully"}
