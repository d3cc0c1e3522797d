from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import enforce_login_rate_limit, get_client_info, get_refresh_cookie
from db.session import get_db_session
from schemas.user_schema import UserCreate, UserLogin
from services.auth_service import login_user, logout_session, refresh_session, register_user
from services.session_store import ClientInfo
from utils.responses import clear_refresh_cookie, no_store_json, set_refresh_cookie

router = APIRouter(prefix="/auth")


@router.post("/register", status_code=201)
async def register(
    request: UserCreate,
    client: ClientInfo = Depends(get_client_info),
    db: AsyncSession = Depends(get_db_session),
):
    issued = await register_user(request, client, db)
    response = no_store_json(issued.to_response(), status_code=201)
    set_refresh_cookie(response, issued.refresh_token)
    return response


@router.post("/login", dependencies=[Depends(enforce_login_rate_limit)])
async def login(
    request: UserLogin,
    client: ClientInfo = Depends(get_client_info),
    db: AsyncSession = Depends(get_db_session),
):
    issued = await login_user(request.username, request.password, client, db)
    response = no_store_json(issued.to_response())
    set_refresh_cookie(response, issued.refresh_token)
    return response


@router.post("/refresh")
async def refresh(
    refresh_token: Optional[str] = Depends(get_refresh_cookie),
    client: ClientInfo = Depends(get_client_info),
    db: AsyncSession = Depends(get_db_session),
):
    rotated = await refresh_session(refresh_token, client, db)
    response = no_store_json(rotated.to_response())
    set_refresh_cookie(response, rotated.refresh_token)
    return response


@router.post("/logout")
async def logout(
    refresh_token: Optional[str] = Depends(get_refresh_cookie),
    db: AsyncSession = Depends(get_db_session),
):
    await logout_session(refresh_token, db)
    response = no_store_json()
    clear_refresh_cookie(response)
    return response
