"""Create the first Admin account.

Sign-ups are inactive Members and only an Admin can activate accounts, so
the first Admin has to be created out of band:

    python create_admin.py admin@example.com admin 'a-strong-password'

The same step runs at startup when ADMIN_EMAIL, ADMIN_USERNAME and
ADMIN_PASSWORD are set. It does nothing once any Admin exists.
"""
import argparse
import logging
import sys

from sqlalchemy.orm import Session

from database import Base, SessionLocal, engine
from dependencies import get_password_hash
from errors import Conflict
from models import Role, User

logger = logging.getLogger(__name__)


def bootstrap_admin(db: Session, email: str, username: str, password: str):
    """Create an active Admin. Returns the new account, or None when an
    Admin already exists."""
    if db.query(User.id).filter(User.role == Role.ADMIN).first():
        logger.info("An Admin account already exists; skipping bootstrap")
        return None
    taken = db.query(User.id).filter((User.email == email) | (User.username == username)).first()
    if taken:
        raise Conflict("Email or username already registered", reason="account_exists")

    admin = User(
        email=email,
        username=username,
        password=get_password_hash(password),
        role=Role.ADMIN,
        is_active=True,
    )
    db.add(admin)
    db.commit()
    db.refresh(admin)
    logger.info(f"Bootstrapped Admin account {admin.id} ({admin.username})")
    return admin


def main(argv=None):
    parser = argparse.ArgumentParser(description="Create the first Admin account")
    parser.add_argument("email")
    parser.add_argument("username")
    parser.add_argument("password")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        admin = bootstrap_admin(db, args.email, args.username, args.password)
    except Conflict as e:
        print(f"Error: {e.message}")
        return 1
    finally:
        db.close()

    if admin is None:
        print("An Admin account already exists. Nothing to do.")
    else:
        print(f"Admin {admin.username} created with id {admin.id}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
