from typing import Optional, Tuple, List

from sqlalchemy import select, or_, func
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import Conflict, NotFound
from core.security import get_password_hash
from db.models.user import User as UserModel, Role
from services.session_store import revoke_all_user_sessions
from utils.db import safe_commit
from utils.timing import timeit
import logging

logger = logging.getLogger(__name__)

DUPLICATE_USER_MESSAGE = "User with provided username or email already exists"
USER_NOT_FOUND_MESSAGE = "User not found"


async def get_user_by_username(username: str, db: AsyncSession) -> Optional[UserModel]:
    result = await db.execute(select(UserModel).where(UserModel.username == username))
    return result.scalars().first()


async def get_user_by_id(user_id: str, db: AsyncSession) -> Optional[UserModel]:
    result = await db.execute(
        select(UserModel).where(UserModel.id == user_id).execution_options(populate_existing=True)
    )
    return result.scalars().first()


async def find_conflicting_user(username: str, email: str, db: AsyncSession) -> Optional[UserModel]:
    """Any user already holding `username` or `email` (exact match)"""
    result = await db.execute(
        select(UserModel).where(or_(UserModel.username == username, UserModel.email == email))
    )
    return result.scalars().first()


@timeit("create_user")
async def create_user(username: str, email: str, password: str, db: AsyncSession, role: Role = Role.user) -> UserModel:
    """Create a user with a freshly hashed password.

    Raises Conflict if the username or email is taken, including when a
    concurrent insert wins the race and the unique index rejects ours.
    """
    if await find_conflicting_user(username, email, db):
        raise Conflict(DUPLICATE_USER_MESSAGE)

    password_hash = await get_password_hash(password)
    user = UserModel(username=username, email=email, password_hash=password_hash, role=Role(role).value)
    db.add(user)
    await safe_commit(db, integrity_error=Conflict(DUPLICATE_USER_MESSAGE))
    logger.info(f"Created user {user.id} with role {user.role}")
    return user


@timeit("update_user")
async def update_user(
    user_id: str,
    db: AsyncSession,
    username: Optional[str] = None,
    email: Optional[str] = None,
    password: Optional[str] = None,
    role: Optional[Role] = None,
) -> UserModel:
    """Apply the given changes to a user; None means unchanged.

    Raises NotFound for an unknown id and Conflict when the new username or
    email belongs to someone else.
    """
    user = await get_user_by_id(user_id, db)
    if user is None:
        raise NotFound(USER_NOT_FOUND_MESSAGE)

    taken = []
    if username is not None:
        taken.append(UserModel.username == username)
    if email is not None:
        taken.append(UserModel.email == email)
    if taken:
        clash = await db.execute(select(UserModel.id).where(UserModel.id != user.id, or_(*taken)))
        if clash.first() is not None:
            raise Conflict(DUPLICATE_USER_MESSAGE)

    if username is not None:
        user.username = username
    if email is not None:
        user.email = email
    if password is not None:
        user.password_hash = await get_password_hash(password)
    if role is not None and Role(role).value != user.role:
        logger.info(f"Role of user {user.id} changed from {user.role} to {Role(role).value}")
        user.role = Role(role).value

    await safe_commit(db, integrity_error=Conflict(DUPLICATE_USER_MESSAGE))
    return user


@timeit("delete_user")
async def delete_user(user_id: str, db: AsyncSession) -> None:
    """Delete a user after revoking every live refresh session they hold"""
    user = await get_user_by_id(user_id, db)
    if user is None:
        raise NotFound(USER_NOT_FOUND_MESSAGE)
    revoked = await revoke_all_user_sessions(db, user.id)
    await db.delete(user)
    await safe_commit(db)
    logger.info(f"Deleted user {user_id}; revoked {revoked} active session(s)")


async def list_users(db: AsyncSession, limit: int = 20, offset: int = 0) -> Tuple[List[UserModel], int]:
    result = await db.execute(
        select(UserModel).order_by(UserModel.created_at.desc()).offset(offset).limit(limit)
    )
    total = await db.scalar(select(func.count()).select_from(UserModel))
    return list(result.scalars().all()), int(total or 0)


async def ensure_admin_user(username: str, email: str, password: str, db: AsyncSession) -> Optional[UserModel]:
    """Provision the bootstrap admin unless a user with that username exists"""
    existing = await get_user_by_username(username, db)
    if existing:
        if existing.role != Role.admin.value:
            logger.warning(f"Bootstrap admin username '{username}' belongs to a non-admin user; leaving it unchanged")
        return None
    user = await create_user(username, email, password, db, role=Role.admin)
    logger.info(f"Provisioned bootstrap admin '{username}'")
    return user
