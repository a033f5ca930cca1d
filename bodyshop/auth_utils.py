import logging
from typing import Optional

from fastapi import Request
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from bodyshop.config import settings
from bodyshop.database_models import User
from bodyshop.errors import BodyshopError

logger = logging.getLogger(__name__)

# scrypt needs no extra backend package
pwd_context = CryptContext(schemes=["scrypt"], deprecated="auto")

DEFAULT_ACTOR = "Staff"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Checks a plain password against the stored hash."""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def authenticate_user(db: Session, username: str, password: str) -> Optional[User]:
    user = db.query(User).filter(User.username == username).first()
    if user and verify_password(password, user.password_hash):
        return user
    return None


def create_admin_user_if_not_exists(db: Session) -> None:
    """Creates the default staff account if it is missing."""
    admin_user = db.query(User).filter(User.username == settings.ADMIN_USERNAME).first()

    if admin_user is None:
        new_admin = User(
            username=settings.ADMIN_USERNAME,
            password_hash=get_password_hash(settings.ADMIN_PASSWORD),
            full_name="Shop Administrator",
        )
        db.add(new_admin)
        db.commit()
        logger.info("Default staff user '%s' created.", settings.ADMIN_USERNAME)
    else:
        logger.debug("Default staff user '%s' already exists.", settings.ADMIN_USERNAME)


def get_current_user(request: Request) -> str:
    """Staff-only routes: the session must carry a logged-in user."""
    username = request.session.get("user")
    if not username:
        raise BodyshopError("Staff login required", status_code=401)
    return username


def get_staff_name(request: Request) -> Optional[str]:
    """Logged-in staff user, or None. Used as the default actor for edits."""
    return request.session.get("user")


def resolve_actor(explicit: Optional[str], request: Request) -> str:
    return explicit or get_staff_name(request) or DEFAULT_ACTOR
