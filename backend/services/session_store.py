"""Persistence for refresh sessions.

A refresh session row is created on every login, registration and rotation,
and afterwards only ever gains ``revoked_at`` and ``replaced_by_token_id``.
None of these helpers commit; the session manager owns the transaction.
"""
from datetime import datetime, timedelta
from typing import List, NamedTuple, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.security import hash_token_id
from db.models.refresh_token import RefreshToken
from utils.clock import utcnow
import logging

logger = logging.getLogger(__name__)


class ClientInfo(NamedTuple):
    """Where a request came from, recorded on each new session"""
    ip: Optional[str] = None
    user_agent: Optional[str] = None


async def create_session(
    db: AsyncSession,
    user_id: str,
    jti: str,
    ttl_seconds: int,
    client: ClientInfo = ClientInfo(),
    now: Optional[datetime] = None,
) -> RefreshToken:
    now = now or utcnow()
    record = RefreshToken(
        user_id=user_id,
        hashed_token=hash_token_id(jti),
        expires_at=now + timedelta(seconds=ttl_seconds),
        created_by_ip=client.ip,
        user_agent=client.user_agent[:512] if client.user_agent else None,
        created_at=now,
    )
    db.add(record)
    await db.flush()
    return record


async def get_session_by_jti(db: AsyncSession, jti: str) -> Optional[RefreshToken]:
    result = await db.execute(
        select(RefreshToken).where(RefreshToken.hashed_token == hash_token_id(jti))
        .execution_options(populate_existing=True)
    )
    return result.scalars().first()


async def list_user_sessions(db: AsyncSession, user_id: str) -> List[RefreshToken]:
    result = await db.execute(
        select(RefreshToken).where(RefreshToken.user_id == user_id).order_by(RefreshToken.created_at)
    )
    return list(result.scalars().all())


async def revoke_session(
    db: AsyncSession,
    jti: str,
    replaced_by_token_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> int:
    """Revoke the session for `jti` if it is not revoked yet; idempotent"""
    values = {"revoked_at": now or utcnow()}
    if replaced_by_token_id is not None:
        values["replaced_by_token_id"] = replaced_by_token_id
    result = await db.execute(
        update(RefreshToken)
        .where(RefreshToken.hashed_token == hash_token_id(jti), RefreshToken.revoked_at.is_(None))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


async def revoke_all_user_sessions(db: AsyncSession, user_id: str, now: Optional[datetime] = None) -> int:
    """Revoke every unrevoked session of a user; returns how many rows changed"""
    result = await db.execute(
        update(RefreshToken)
        .where(RefreshToken.user_id == user_id, RefreshToken.revoked_at.is_(None))
        .values(revoked_at=now or utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


async def rotate_session(
    db: AsyncSession,
    current: RefreshToken,
    new_jti: str,
    ttl_seconds: int,
    client: ClientInfo = ClientInfo(),
    now: Optional[datetime] = None,
) -> Optional[RefreshToken]:
    """Insert the successor of `current` and revoke `current` in its favour.

    The predecessor is revoked only if it is still active at `now`. When that
    conditional update matches nothing (another request rotated or revoked it
    first) the successor is left pending and None is returned; the caller must
    roll back so the successor never becomes visible.
    """
    now = now or utcnow()
    successor = await create_session(db, current.user_id, new_jti, ttl_seconds, client, now=now)
    result = await db.execute(
        update(RefreshToken)
        .where(
            RefreshToken.id == current.id,
            RefreshToken.revoked_at.is_(None),
            RefreshToken.expires_at > now,
        )
        .values(revoked_at=now, replaced_by_token_id=successor.id)
        .execution_options(synchronize_session=False)
    )
    if (result.rowcount or 0) != 1:
        logger.warning(f"Refresh session {current.id} changed state during rotation")
        return None
    return successor
