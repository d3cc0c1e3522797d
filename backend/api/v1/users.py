from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import admin_required, get_current_principal
from core.errors import Forbidden, NotFound
from db.models.user import Role
from db.session import get_db_session
from schemas.user_schema import AdminUserCreate, Principal, User as UserSchema, UserList, UserUpdate
from services.user_service import (
    USER_NOT_FOUND_MESSAGE,
    create_user,
    delete_user,
    get_user_by_id,
    list_users,
    update_user,
)
from utils.responses import no_store_json

# Every route here sits behind the authorization gate
router = APIRouter(prefix="/users", dependencies=[Depends(get_current_principal)])


def _user_body(user) -> dict:
    return {"user": UserSchema.model_validate(user).model_dump(mode="json")}


def _ensure_self_or_admin(principal: Principal, user_id: str, message: str) -> None:
    if principal.role != Role.admin and principal.id != user_id:
        raise Forbidden(message)


@router.get("/me/profile")
async def read_my_profile(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db_session),
):
    user = await get_user_by_id(principal.id, db)
    if user is None:
        raise NotFound(USER_NOT_FOUND_MESSAGE)
    return no_store_json(_user_body(user))


@router.get("")
async def all_users(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    _: Principal = Depends(admin_required),
    db: AsyncSession = Depends(get_db_session),
):
    users, total = await list_users(db, limit=limit, offset=offset)
    page = UserList(
        items=[UserSchema.model_validate(u) for u in users],
        total=total,
        limit=limit,
        offset=offset,
    )
    return no_store_json(page.model_dump(mode="json"))


@router.post("", status_code=201)
async def provision_user(
    request: AdminUserCreate,
    _: Principal = Depends(admin_required),
    db: AsyncSession = Depends(get_db_session),
):
    user = await create_user(request.username, request.email, request.password, db, role=request.role)
    return no_store_json(_user_body(user), status_code=201)


@router.get("/{user_id}")
async def read_user(
    user_id: str,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db_session),
):
    _ensure_self_or_admin(principal, user_id, "Cannot access other user")
    user = await get_user_by_id(user_id, db)
    if user is None:
        raise NotFound(USER_NOT_FOUND_MESSAGE)
    return no_store_json(_user_body(user))


@router.put("/{user_id}")
async def modify_user(
    user_id: str,
    request: UserUpdate,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db_session),
):
    """Self-service or admin update; only admins may change a role.

    A role change shows up in the user's tokens at their next refresh or login.
    """
    _ensure_self_or_admin(principal, user_id, "Cannot modify other user")
    is_admin = principal.role == Role.admin
    if not is_admin and request.role is not None and request.role != principal.role:
        raise Forbidden("Cannot change role")

    user = await update_user(
        user_id,
        db,
        username=request.username,
        email=request.email,
        password=request.password,
        role=request.role if is_admin else None,
    )
    return no_store_json(_user_body(user))


@router.delete("/{user_id}")
async def remove_user(
    user_id: str,
    _: Principal = Depends(admin_required),
    db: AsyncSession = Depends(get_db_session),
):
    await delete_user(user_id, db)
    return no_store_json()
