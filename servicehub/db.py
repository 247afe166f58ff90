import os
import time
import logging
from typing import Generator
from urllib.parse import quote_plus
from sqlalchemy import create_engine, text
from sqlalchemy.orm import Session, sessionmaker, declarative_base
from sqlalchemy.exc import OperationalError
from sqlalchemy.pool import StaticPool

logger = logging.getLogger("servicehub.db")


def get_database_url() -> str:
    """
    Build DATABASE_URL from environment variables.
    Supports both explicit DATABASE_URL and individual MySQL credentials.
    """
    database_url = os.getenv("DATABASE_URL", "")
    if database_url:
        logger.info("Using DATABASE_URL from environment")
        return database_url

    db_host = os.getenv("DB_HOST", "localhost")
    db_port = os.getenv("DB_PORT", "3306")
    db_user = os.getenv("DB_USER", "root")
    db_password = os.getenv("DB_PASSWORD", "")
    db_name = os.getenv("DB_NAME", "servicehub")

    # URL-encode password to handle special characters like @, :, /
    mysql_url = f"mysql+pymysql://{db_user}:{quote_plus(db_password)}@{db_host}:{db_port}/{db_name}"
    logger.info(f"Using MySQL at {db_host}:{db_port}/{db_name}")
    return mysql_url


def create_engine_with_retry(database_url: str, max_retries: int = 5, retry_delay: int = 2):
    """
    Create database engine with retry logic for MySQL readiness.
    The app container may start before MySQL accepts connections.
    In-memory SQLite (tests) shares one connection across threads.
    """
    is_sqlite = database_url.startswith("sqlite")
    engine_kwargs = {}

    if is_sqlite:
        engine_kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            engine_kwargs["poolclass"] = StaticPool
    else:
        engine_kwargs["connect_args"] = {
            "connect_timeout": 10,
            "charset": "utf8mb4"
        }
        engine_kwargs["pool_pre_ping"] = True
        engine_kwargs["pool_recycle"] = 3600

    engine = create_engine(database_url, echo=False, **engine_kwargs)

    for attempt in range(1, max_retries + 1):
        try:
            logger.debug(f"Connection attempt {attempt}/{max_retries}...")
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.info("Successfully connected to database")
            return engine
        except OperationalError as e:
            if attempt < max_retries:
                logger.warning(f"Connection failed: {e}")
                logger.info(f"Retrying in {retry_delay} seconds...")
                time.sleep(retry_delay)
            else:
                logger.error(f"Failed to connect after {max_retries} attempts")
                raise

    return engine


DATABASE_URL = get_database_url()
engine = create_engine_with_retry(DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency yielding one session per request."""
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
