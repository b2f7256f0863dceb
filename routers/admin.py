import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from authorization import Identity, check_activation_change, check_role_change
from crud import get_or_404, to_dict
from database import get_db
from dependencies import require
from errors import Conflict, NotFound
from models import Blog, Role, RolePermission, User
from schemas import (
    ActivationUpdate, RolePermissions, RolePermissionsUpdate, RoleUpdate,
    User as UserSchema,
)

logger = logging.getLogger(__name__)

router = APIRouter()

@router.get("/users")
async def get_users(
    db: Session = Depends(get_db),
    current_user: Identity = Depends(require("users:list"))
):
    """List all accounts (admin only)"""
    users = db.query(User).order_by(User.created_at.desc(), User.seq.desc()).all()
    return {"users": [UserSchema.model_validate(user) for user in users]}

@router.put("/users/{user_id}/role")
async def update_user_role(
    user_id: str,
    role_update: RoleUpdate,
    db: Session = Depends(get_db),
    current_user: Identity = Depends(require("users:update_role"))
):
    """Change an account's role (admin only). Admins cannot demote themselves."""
    check_role_change(current_user, user_id, role_update.role)
    user = get_or_404(db, User, user_id, "User")

    user.role = role_update.role
    db.commit()
    db.refresh(user)
    logger.info(f"{current_user.id} set role of {user_id} to {user.role.value}")
    return {"message": "User role updated successfully", "user": UserSchema.model_validate(user)}

@router.put("/users/{user_id}/activate")
async def update_user_activation(
    user_id: str,
    activation: ActivationUpdate,
    db: Session = Depends(get_db),
    current_user: Identity = Depends(require("users:activate"))
):
    """Activate or deactivate an account (admin only)"""
    check_activation_change(current_user, user_id, activation.is_active)
    user = get_or_404(db, User, user_id, "User")

    user.is_active = activation.is_active
    db.commit()
    db.refresh(user)
    state = "activated" if user.is_active else "deactivated"
    logger.info(f"{current_user.id} {state} {user_id}")
    return {"message": f"User {state} successfully", "user": UserSchema.model_validate(user)}

@router.delete("/users/{user_id}")
async def delete_user(
    user_id: str,
    db: Session = Depends(get_db),
    current_user: Identity = Depends(require("users:delete"))
):
    """Delete an account (admin only). Events, blogs, timeline posts and
    polls it authored stay, with the reference set to null."""
    if current_user.id == user_id:
        raise Conflict("You cannot delete your own account", reason="self_deletion", status_code=400)
    get_or_404(db, User, user_id, "User")
    db.query(User).filter(User.id == user_id).delete(synchronize_session=False)
    db.commit()
    logger.info(f"{current_user.id} deleted account {user_id}")
    return {"message": "User deleted successfully"}

@router.put("/blogs/{blog_id}/approve")
async def approve_blog(
    blog_id: str,
    db: Session = Depends(get_db),
    current_user: Identity = Depends(require("blogs:approve"))
):
    """Publish a blog post (admin only)"""
    blog = get_or_404(db, Blog, blog_id, "Blog post")
    blog.is_available = True
    db.commit()
    db.refresh(blog)
    return {"message": "Blog post approved", "blog": to_dict(blog)}

@router.get("/roles")
async def get_role_permissions(
    db: Session = Depends(get_db),
    current_user: Identity = Depends(require("roles:read"))
):
    rows = db.query(RolePermission).order_by(RolePermission.role).all()
    return {"roles": [RolePermissions.model_validate(row) for row in rows]}

@router.put("/roles/{role}")
async def update_role_permissions(
    role: Role,
    permissions_update: RolePermissionsUpdate,
    db: Session = Depends(get_db),
    current_user: Identity = Depends(require("roles:update"))
):
    """Replace the capability list of a role (admin only)"""
    row = db.query(RolePermission).filter(RolePermission.role == role).first()
    if row is None:
        raise NotFound("Role not found")
    row.permissions = list(permissions_update.permissions)
    db.commit()
    db.refresh(row)
    logger.info(f"{current_user.id} updated permissions of {role.value}")
    return {
        "message": "Role permissions updated successfully",
        "role": RolePermissions.model_validate(row),
    }
