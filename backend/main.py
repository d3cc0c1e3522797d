from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from sqlalchemy import text

from api.errors import register_exception_handlers
from api.v1 import auth, users
from core.config import settings
from core.rate_limit import RollingWindowRateLimiter
from db.base import initialize_database, bootstrap_admin
from db.session import engine, SessionLocal
from utils.logging_config import configure_logging, RequestContextMiddleware

# Configure logging with date-based files and TTL retention
logger = configure_logging("roadmap_tracker")

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG
)

register_exception_handlers(app)

# Login throttling state; process-local, reset on restart
app.state.login_limiter = RollingWindowRateLimiter(
    settings.LOGIN_RATE_LIMIT,
    settings.LOGIN_RATE_WINDOW_SECONDS,
)

# Add GZip compression for larger JSON payloads
app.add_middleware(GZipMiddleware, minimum_size=500)

# Add logging context middleware to capture user_id and API path
app.add_middleware(RequestContextMiddleware)

# CORS middleware; credentials on so the refresh cookie travels
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_ORIGIN],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth.router, tags=["Authentication"])
app.include_router(users.router, tags=["Users"])


@app.on_event("startup")
async def startup_db_client():
    """Create tables and the bootstrap admin"""
    await initialize_database()
    await bootstrap_admin()
    logger.info("Application startup complete")


@app.on_event("shutdown")
async def shutdown_db_client():
    await engine.dispose()
    logger.info("Application shutdown complete")


@app.get("/")
async def root():
    return {"message": settings.APP_NAME, "version": settings.VERSION}


@app.get("/health")
async def health_check():
    # Actively check DB connectivity
    try:
        async with SessionLocal() as db:
            await db.execute(text("SELECT 1"))
        db_status = "connected"
    except Exception as e:
        logger.warning(f"Health SQL check failed: {e}")
        db_status = "unavailable"
    return {"status": "ok" if db_status == "connected" else "degraded", "database": db_status}
