"""
auth.py
Authentication utilities (bcrypt hashing, verify, login, change password).

Users live in the entity store; only the force-password-change flag is kept in SQLite.
"""

from __future__ import annotations

import logging

import bcrypt

import db
from models import Result, StoreState, User

logger = logging.getLogger(__name__)


def _to_bcrypt_secret(password: str) -> bytes:
    """
    bcrypt only uses the first 72 BYTES of the password.
    We truncate to 72 bytes to avoid ValueError and to make behavior explicit.
    """
    pw = password.encode("utf-8")
    if len(pw) > 72:
        pw = pw[:72]
    return pw


def hash_password(password: str, rounds: int = 12) -> str:
    """
    Returns a bcrypt hash as a UTF-8 string (stored in the store document).
    """
    secret = _to_bcrypt_secret(password)
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(secret, salt)
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against stored bcrypt hash.
    """
    secret = _to_bcrypt_secret(password)
    stored = password_hash.encode("utf-8")
    return bcrypt.checkpw(secret, stored)


def get_user_by_username(state: StoreState, username: str) -> User | None:
    return next((u for u in state.users if u.username == username), None)


def current_user(state: StoreState) -> User | None:
    if state.current_user_id is None:
        return None
    return next((u for u in state.users if u.id == state.current_user_id), None)


def login(store, username: str, password: str) -> Result:
    user = get_user_by_username(store.state, username)
    if not user or not user.password_hash or not verify_password(password, user.password_hash):
        logger.warning("Failed login for %r", username)
        return Result(ok=False, error="Invalid username or password.")
    store.login_as(user.id)
    logger.info("User %r logged in", username)
    return Result(ok=True)


def logout(store) -> None:
    store.logout()


def change_password(store, username: str, new_password: str) -> None:
    user = get_user_by_username(store.state, username)
    if user is None:
        return
    store.update_user(user.id, password_hash=hash_password(new_password))
    db.clear_force_password_change()
