import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from authorization import AuthorizationEngine, Identity, engine_for
from database import get_db, settings
from errors import Forbidden, Unauthorized
from models import User

logger = logging.getLogger(__name__)

# Security setup
SECRET_KEY = settings.SECRET_KEY
ALGORITHM = settings.ALGORITHM
ACCESS_TOKEN_EXPIRE_MINUTES = settings.ACCESS_TOKEN_EXPIRE_MINUTES

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
security = HTTPBearer(auto_error=False)

def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)

def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)

def create_access_token(user_id: str, role: str, expires_delta: Optional[timedelta] = None) -> str:
    if expires_delta is None:
        expires_delta = timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode = {
        "sub": user_id,
        "role": role,
        "exp": datetime.now(timezone.utc) + expires_delta,
    }
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)

def decode_access_token(token: str) -> str:
    """Return the account id a token was issued for."""
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except ExpiredSignatureError:
        raise Unauthorized("Token expired", reason="token_expired")
    except JWTError as e:
        logger.info(f"JWT Error: {e}")
        raise Unauthorized("Invalid token", reason="invalid_token")
    user_id = payload.get("sub")
    if not user_id:
        raise Unauthorized("Invalid token", reason="invalid_token")
    return user_id

def resolve_identity(token: Optional[str], db: Session) -> Optional[Identity]:
    """Turn a bearer token into an identity; no token means anonymous."""
    if not token:
        return None
    user_id = decode_access_token(token)
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise Unauthorized("Invalid token", reason="invalid_token")
    return Identity(id=user.id, role=user.role, is_active=user.is_active, username=user.username)

def ensure_activated(identity: Identity):
    if not identity.is_active:
        raise Forbidden(
            "Account is not activated. Please contact an administrator.",
            reason="not_activated",
        )

async def get_optional_identity(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> Optional[Identity]:
    if credentials is None:
        # HTTPBearer ignores other schemes; a header that is sent must still be valid
        if request.headers.get("Authorization"):
            raise Unauthorized("Invalid token", reason="invalid_token")
        return None
    return resolve_identity(credentials.credentials, db)

async def get_current_identity(
    identity: Optional[Identity] = Depends(get_optional_identity)
) -> Identity:
    if identity is None:
        raise Unauthorized("Access token required", reason="missing_token")
    ensure_activated(identity)
    return identity

def get_authorizer(db: Session = Depends(get_db)) -> AuthorizationEngine:
    return engine_for(db)

def require(action: str):
    """Dependency factory: resolve the caller and enforce a role-gated action."""
    async def dependency(
        identity: Identity = Depends(get_current_identity),
        authorizer: AuthorizationEngine = Depends(get_authorizer)
    ) -> Identity:
        authorizer.enforce(identity, action)
        return identity
    return dependency
