from typing import Iterable, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import ValidationError

from core.config import settings
from core.errors import Forbidden, Unauthorized
from core.rate_limit import RollingWindowRateLimiter
from core.security import verify_access_token
from db.models.user import Role
from schemas.user_schema import Principal
from services.session_store import ClientInfo
from utils.logging_config import user_id_var

# Shows the 'Authorize' button in the OpenAPI docs; errors are raised here instead
bearer_scheme = HTTPBearer(auto_error=False)

INVALID_ACCESS_TOKEN_MESSAGE = "Invalid or expired access token"


def get_client_info(request: Request) -> ClientInfo:
    ip = request.client.host if request.client else None
    return ClientInfo(ip=ip, user_agent=request.headers.get("user-agent"))


def get_refresh_cookie(request: Request) -> Optional[str]:
    return request.cookies.get(settings.REFRESH_COOKIE_NAME)


def get_login_limiter(request: Request) -> RollingWindowRateLimiter:
    return request.app.state.login_limiter


async def enforce_login_rate_limit(
    request: Request,
    limiter: RollingWindowRateLimiter = Depends(get_login_limiter),
) -> None:
    """Count a login attempt against the caller's address before any credential work"""
    client = get_client_info(request)
    limiter.check(client.ip or "unknown")


async def get_current_principal(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Principal:
    """Authorization gate: verify the bearer access token and attach the principal.

    Every failure gives the same 401 so callers cannot tell an expired token
    from a forged one.
    """
    if credentials is None or not credentials.credentials:
        raise Unauthorized("Authorization header is missing")

    payload = verify_access_token(credentials.credentials)
    if payload is None:
        raise Unauthorized(INVALID_ACCESS_TOKEN_MESSAGE)
    try:
        principal = Principal(id=payload["sub"], role=payload.get("role"))
    except ValidationError:
        raise Unauthorized(INVALID_ACCESS_TOKEN_MESSAGE)

    request.state.principal = principal
    user_id_var.set(principal.id)
    return principal


def require_roles(*roles: Role):
    """Role gate; must run after get_current_principal on the same request."""
    allowed: Iterable[str] = {Role(role).value for role in roles}

    async def role_gate(request: Request) -> Principal:
        principal: Optional[Principal] = getattr(request.state, "principal", None)
        if principal is None:
            raise Unauthorized("Authorization header is missing")
        if principal.role.value not in allowed:
            raise Forbidden("Insufficient permissions")
        return principal

    return role_gate


admin_required = require_roles(Role.admin)
