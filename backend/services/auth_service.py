"""Session manager: registration, login, refresh-token rotation and logout.

Refresh sessions form chains. Every successful refresh revokes the presented
session and links it to its successor; presenting a session that is unknown,
revoked or expired is treated as token theft and revokes every live session
of the user, forcing a fresh login everywhere.
"""
from dataclasses import dataclass
from typing import NoReturn, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.errors import InvalidCredentials, Unauthorized
from core.security import (
    InvalidToken,
    burn_password_check,
    create_access_token,
    create_refresh_token,
    generate_jti,
    refresh_codec,
    verify_password,
)
from db.models.user import User as UserModel
from schemas.user_schema import UserCreate
from services import session_store
from services.session_store import ClientInfo
from services.user_service import create_user, get_user_by_id, get_user_by_username
from utils.clock import utcnow
from utils.db import safe_commit
from utils.timing import timeit
import logging

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS_MESSAGE = "Invalid username or password"


@dataclass
class IssuedSession:
    access_token: str
    refresh_token: str
    refresh_token_id: str
    user: UserModel

    def to_response(self) -> dict:
        return {
            "accessToken": self.access_token,
            "user": self.user.to_public_dict(),
            "refreshTokenId": self.refresh_token_id,
        }


@dataclass
class RotatedSession:
    access_token: str
    refresh_token: str
    refresh_token_id: str

    def to_response(self) -> dict:
        return {"accessToken": self.access_token}


async def issue_session(user: UserModel, client: ClientInfo, db: AsyncSession) -> IssuedSession:
    """Open a new refresh chain for `user` and sign its first token pair"""
    jti = generate_jti()
    record = await session_store.create_session(db, user.id, jti, settings.refresh_token_ttl_seconds, client)
    refresh_token_id = record.id
    await safe_commit(db)
    return IssuedSession(
        access_token=create_access_token(user.id, user.role),
        refresh_token=create_refresh_token(user.id, user.role, jti),
        refresh_token_id=refresh_token_id,
        user=user,
    )


@timeit("register_user")
async def register_user(request: UserCreate, client: ClientInfo, db: AsyncSession) -> IssuedSession:
    user = await create_user(request.username, request.email, request.password, db)
    issued = await issue_session(user, client, db)
    logger.info(f"Registered user {user.id} from {client.ip}")
    return issued


@timeit("login_user")
async def login_user(username: str, password: str, client: ClientInfo, db: AsyncSession) -> IssuedSession:
    """Verify credentials and issue a session.

    Unknown usernames and wrong passwords fail identically, and both spend
    one bcrypt verification.
    """
    user = await get_user_by_username(username, db)
    if user is None:
        await burn_password_check(password)
        logger.warning(f"Failed login for unknown username from {client.ip}")
        raise InvalidCredentials(INVALID_CREDENTIALS_MESSAGE)
    if not await verify_password(password, user.password_hash):
        logger.warning(f"Failed login for user {user.id} from {client.ip}")
        raise InvalidCredentials(INVALID_CREDENTIALS_MESSAGE)

    issued = await issue_session(user, client, db)
    logger.info(f"User {user.id} logged in from {client.ip}")
    return issued


async def _reject_reused_token(user_id: str, db: AsyncSession, reason: str) -> NoReturn:
    revoked = await session_store.revoke_all_user_sessions(db, user_id)
    await safe_commit(db)
    logger.warning(f"Refresh token reuse detected for user {user_id} ({reason}); revoked {revoked} active session(s)")
    raise Unauthorized("Refresh token revoked or expired", clear_refresh_cookie=True)


@timeit("refresh_session")
async def refresh_session(refresh_token: Optional[str], client: ClientInfo, db: AsyncSession) -> RotatedSession:
    if not refresh_token:
        raise Unauthorized("Refresh token missing")

    try:
        payload = refresh_codec.verify(refresh_token)
    except InvalidToken as e:
        logger.info(f"Rejected refresh token: {e}")
        raise Unauthorized("Invalid or expired refresh token", clear_refresh_cookie=True)

    user_id = payload["sub"]
    now = utcnow()
    stored = await session_store.get_session_by_jti(db, payload["jti"])
    if stored is None:
        await _reject_reused_token(user_id, db, "unknown session")
    if stored.user_id != user_id:
        await _reject_reused_token(user_id, db, "session owner mismatch")
    if stored.revoked_at is not None:
        await _reject_reused_token(user_id, db, f"session {stored.id} already revoked")
    if stored.expires_at <= now:
        await _reject_reused_token(user_id, db, f"session {stored.id} expired")

    # Role changes made since the last issuance take effect here
    user = await get_user_by_id(user_id, db)
    if user is None:
        await _reject_reused_token(user_id, db, "user no longer exists")

    stored_id = stored.id
    new_jti = generate_jti()
    successor = await session_store.rotate_session(
        db, stored, new_jti, settings.refresh_token_ttl_seconds, client, now=now
    )
    if successor is None:
        await db.rollback()
        await _reject_reused_token(user_id, db, f"session {stored_id} lost a concurrent rotation")
    successor_id = successor.id
    await safe_commit(db)
    logger.info(f"Rotated refresh session {stored_id} -> {successor_id} for user {user_id}")

    return RotatedSession(
        access_token=create_access_token(user.id, user.role),
        refresh_token=create_refresh_token(user.id, user.role, new_jti),
        refresh_token_id=successor_id,
    )


async def logout_session(refresh_token: Optional[str], db: AsyncSession) -> bool:
    """Revoke the presented session if the token verifies.

    Returns whether a session was revoked. A missing or invalid token is not
    an error: such a token is already untrusted.
    """
    if not refresh_token:
        return False
    try:
        payload = refresh_codec.verify(refresh_token)
    except InvalidToken as e:
        logger.info(f"Logout with unusable refresh token: {e}")
        return False
    revoked = await session_store.revoke_session(db, payload["jti"])
    await safe_commit(db)
    if revoked:
        logger.info(f"User {payload['sub']} logged out")
    return revoked > 0
