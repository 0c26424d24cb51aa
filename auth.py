from typing import Optional

import bcrypt
from sqlalchemy import select
from sqlalchemy.orm import Session

from database import User


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))


def create_user(db: Session, username: str, password: str) -> User:
    user = User(username=username, password_hash=hash_password(password))
    db.add(user)
    db.commit()
    return user


def authenticate(db: Session, username: str, password: str) -> Optional[User]:
    """Return the user when the credentials match, otherwise ``None``."""
    user = db.execute(select(User).where(User.username == username)).scalar_one_or_none()
    if user and verify_password(password, user.password_hash):
        return user
    return None
