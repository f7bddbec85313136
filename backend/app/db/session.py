"""
Engine and per-request sessions for the record store
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.core.settings import settings
from app.logging_config import get_logger

logger = get_logger(__name__)

engine = create_engine(
    settings.database_url,
    echo=settings.DEBUG,
    pool_pre_ping=True,
    pool_recycle=3600,
)
logger.info("Record store at %s:%s/%s", settings.DB_HOST, settings.DB_PORT, settings.DB_NAME)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """Yield a session and close it when the request ends; services commit."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
