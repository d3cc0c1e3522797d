from core.config import settings
from db.session import Base, engine, SessionLocal
from db.models.user import User  # noqa: F401  (registers the table)
from db.models.refresh_token import RefreshToken  # noqa: F401
from services.user_service import ensure_admin_user
import logging

logger = logging.getLogger(__name__)


async def initialize_database():
    """Create tables if they do not exist."""
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created successfully")
    except Exception as e:
        logger.error(f"Error creating database tables: {e}")
        raise


async def bootstrap_admin():
    """Provision the configured admin account on first start."""
    if not (settings.ADMIN_USERNAME and settings.ADMIN_EMAIL and settings.ADMIN_PASSWORD):
        logger.info("Admin bootstrap skipped; ADMIN_USERNAME/ADMIN_EMAIL/ADMIN_PASSWORD not all set")
        return
    async with SessionLocal() as db:
        await ensure_admin_user(settings.ADMIN_USERNAME, settings.ADMIN_EMAIL, settings.ADMIN_PASSWORD, db)
