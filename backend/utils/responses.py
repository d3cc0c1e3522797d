from typing import Any, Dict, List, Optional

from fastapi.responses import JSONResponse
from starlette.responses import Response

from core.config import settings

NO_STORE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
    "Pragma": "no-cache",
    "Expires": "0",
}


def no_store_json(data: Any = None, status_code: int = 200):
    """Return a success envelope with no-store caching headers."""
    content = {"status": "ok"}
    if data is not None:
        content["data"] = data
    return JSONResponse(content=content, status_code=status_code, headers=NO_STORE_HEADERS)


def error_json(status_code: int, code: str, message: str, fields: Optional[Dict[str, List[str]]] = None):
    error = {"code": code, "message": message}
    if fields:
        error["fields"] = fields
    return JSONResponse(content={"status": "error", "error": error}, status_code=status_code, headers=NO_STORE_HEADERS)


def _refresh_cookie_options() -> dict:
    return {
        "httponly": True,
        "samesite": "none" if settings.is_production else "lax",
        "secure": settings.is_production,
        "path": "/",
    }


def set_refresh_cookie(response: Response, refresh_token: str) -> None:
    response.set_cookie(
        settings.REFRESH_COOKIE_NAME,
        refresh_token,
        max_age=settings.refresh_token_ttl_seconds,
        **_refresh_cookie_options(),
    )


def clear_refresh_cookie(response: Response) -> None:
    response.delete_cookie(settings.REFRESH_COOKIE_NAME, **_refresh_cookie_options())
