import logging
import logging.handlers
import contextvars
from pathlib import Path
from typing import Dict, List, Optional

from core.config import settings
from core.security import verify_access_token
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

LOG_FORMAT = "%(levelname)s - %(asctime)s - %(client_ip)s - %(user_id)s - %(api)s - %(name)s - %(message)s"

# Loggers whose records also land in security.log (failed logins, reuse detection, throttling)
SECURITY_LOGGERS = ("services.auth_service", "services.session_store", "core.rate_limit")

user_id_var = contextvars.ContextVar("user_id", default="-")
api_var = contextvars.ContextVar("api", default="-")
client_ip_var = contextvars.ContextVar("client_ip", default="-")


def map_log_level(level_name: Optional[str]) -> int:
    level = logging.getLevelName((level_name or "INFO").upper())
    return level if isinstance(level, int) else logging.INFO


class ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.user_id = user_id_var.get()
        record.api = api_var.get()
        record.client_ip = client_ip_var.get()
        return True


def _daily_file(log_dir: Path, filename: str, level: int, formatter: logging.Formatter) -> logging.Handler:
    handler = logging.handlers.TimedRotatingFileHandler(
        filename=str(log_dir / filename),
        when="midnight",
        backupCount=max(int(settings.LOG_TTL_DAYS), 0),
        encoding="utf-8",
        utc=True,
    )
    handler.suffix = "%Y-%m-%d"
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(ContextFilter())
    return handler


def _build_handlers(level: int, log_dir: Path) -> Dict[str, logging.Handler]:
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(formatter)
    console.addFilter(ContextFilter())

    return {
        "app": _daily_file(log_dir, "app.log", level, formatter),
        "access": _daily_file(log_dir, "access.log", level, formatter),
        "security": _daily_file(log_dir, "security.log", logging.INFO, formatter),
        "error": _daily_file(log_dir, "error.log", logging.WARNING, formatter),
        "console": console,
    }


def _attach(logger: logging.Logger, handlers: List[logging.Handler], level: int, propagate: bool = False) -> None:
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
    for handler in handlers:
        logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = propagate


def configure_logging(app_logger_name: Optional[str] = None) -> logging.Logger:
    """Configure logging with daily rotation and TTL-based retention.

    - app.log / error.log / console for everything
    - security.log additionally receives the auth, session and rate limit loggers
    - access.log receives uvicorn's access log
    - Rotates at midnight UTC and keeps LOG_TTL_DAYS files per log
    """
    log_dir = Path(settings.LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)

    level = map_log_level(settings.LOG_LEVEL)
    handlers = _build_handlers(level, log_dir)
    general = [handlers["app"], handlers["error"], handlers["console"]]

    _attach(logging.getLogger(), general, level, propagate=True)

    app_logger = logging.getLogger(app_logger_name or "roadmap_tracker")
    _attach(app_logger, general, level)

    # Security loggers keep propagating to root for app.log/error.log/console
    for name in SECURITY_LOGGERS:
        _attach(logging.getLogger(name), [handlers["security"]], level, propagate=True)

    for name in ("uvicorn", "uvicorn.error", "fastapi"):
        _attach(logging.getLogger(name), general, level)
    _attach(logging.getLogger("uvicorn.access"), [handlers["access"], handlers["console"]], level)

    return app_logger


def _bearer_subject(request: Request) -> str:
    auth_header = request.headers.get("authorization") or ""
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return "-"
    payload = verify_access_token(token.strip())
    return (payload or {}).get("sub") or "-"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tag every log record of a request with the caller's address, user id and `METHOD path`."""

    async def dispatch(self, request: Request, call_next):
        tokens = [
            (user_id_var, user_id_var.set(_bearer_subject(request))),
            (api_var, api_var.set(f"{request.method} {request.url.path}")),
            (client_ip_var, client_ip_var.set(request.client.host if request.client else "-")),
        ]
        try:
            return await call_next(request)
        finally:
            for var, token in reversed(tokens):
                var.reset(token)
