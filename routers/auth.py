import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from authorization import Identity
from database import get_db
from dependencies import (
    create_access_token, ensure_activated, get_current_identity,
    get_password_hash, verify_password,
)
from errors import Conflict, NotFound, Unauthorized
from models import Role, User
from schemas import Token, User as UserSchema, UserLogin, UserSignup

logger = logging.getLogger(__name__)

router = APIRouter()

@router.post("/signup", status_code=status.HTTP_201_CREATED)
async def signup(user: UserSignup, db: Session = Depends(get_db)):
    """Register a new account. Accounts start as inactive Members."""
    if db.query(User.id).filter(User.email == user.email).first():
        raise Conflict("Email already registered", reason="email_taken")
    if db.query(User.id).filter(User.username == user.username).first():
        raise Conflict("Username already taken", reason="username_taken")

    db_user = User(
        email=user.email,
        username=user.username,
        password=get_password_hash(user.password),
        role=Role.MEMBER,
        is_active=False
    )
    db.add(db_user)
    try:
        db.commit()
    except IntegrityError:
        # Lost a race with a concurrent signup for the same email/username
        db.rollback()
        raise Conflict("Email or username already registered", reason="account_exists")
    db.refresh(db_user)
    logger.info(f"Account {db_user.id} registered, awaiting activation")

    return {
        "message": "Account created. An administrator must activate it before you can sign in.",
        "user": UserSchema.model_validate(db_user)
    }

@router.post("/signin", response_model=Token)
async def signin(user_credentials: UserLogin, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == user_credentials.email).first()

    if not user or not verify_password(user_credentials.password, user.password):
        raise Unauthorized("Incorrect email or password", reason="invalid_credentials")

    ensure_activated(Identity(id=user.id, role=user.role, is_active=user.is_active))

    access_token = create_access_token(user.id, user.role.value)
    return {
        "access_token": access_token,
        "token_type": "bearer",
        "user": UserSchema.model_validate(user)
    }

@router.get("/me")
async def read_users_me(
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db)
):
    """
    Get current user information
    """
    user = db.query(User).filter(User.id == identity.id).first()
    if user is None:
        raise NotFound("User not found")
    return {
        "user": UserSchema.model_validate(user)
    }
