"""Shared helpers for the resource routers."""
import math

from pydantic import AnyUrl
from sqlalchemy.orm import Session

from errors import NotFound
from models import User

MAX_PAGE_SIZE = 100


def clamp_page(page: int, limit: int):
    return max(1, page), min(MAX_PAGE_SIZE, max(1, limit))


def paginate(query, page: int, limit: int):
    """Apply LIMIT/OFFSET to ``query`` and describe the page."""
    page, limit = clamp_page(page, limit)
    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    total_pages = math.ceil(total / limit)
    return items, {
        "currentPage": page,
        "limit": limit,
        "total": total,
        "totalPages": total_pages,
        "hasNextPage": page < total_pages,
        "hasPreviousPage": page > 1,
    }


def get_or_404(db: Session, model, object_id, label: str):
    obj = db.query(model).filter(model.id == object_id).first()
    if obj is None:
        raise NotFound(f"{label} not found")
    return obj


def exists(db: Session, model, object_id) -> bool:
    return db.query(model.id).filter(model.id == object_id).first() is not None


def column_values(data: dict) -> dict:
    # URLs validated by pydantic are stored as plain strings
    return {key: str(value) if isinstance(value, AnyUrl) else value for key, value in data.items()}


def apply_partial_update(db: Session, obj, fields: dict):
    """Write only the keys present in ``fields``.

    Returns the refreshed object, or None when there was nothing to write.
    The caller commits.
    """
    fields = column_values(fields)
    if not fields:
        return None
    for key, value in fields.items():
        setattr(obj, key, value)
    db.flush()
    return obj


def usernames_for(db: Session, user_ids):
    """Map account id -> (username, email) for the ids that still exist."""
    ids = {user_id for user_id in user_ids if user_id}
    if not ids:
        return {}
    rows = db.query(User.id, User.username, User.email).filter(User.id.in_(ids)).all()
    return {row.id: (row.username, row.email) for row in rows}


def to_dict(obj) -> dict:
    return {column.name: getattr(obj, column.name) for column in obj.__table__.columns}


def with_author(obj, accounts: dict, prefix: str = "author", key: str = "author_id") -> dict:
    """Serialize ``obj`` and join the author's username/email when the
    account still exists; a missing account leaves both null."""
    data = to_dict(obj)
    username, email = accounts.get(data.get(key), (None, None))
    data[f"{prefix}_username"] = username
    data[f"{prefix}_email"] = email
    return data
