import os
import logging
from typing import Generator, Any, Dict

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session, scoped_session

logger = logging.getLogger(__name__)

# --- SQLAlchemy Configuration ---


def normalize_database_url(url: str) -> str:
    """Force the psycopg2 driver on bare Postgres URLs."""
    url = str(url or "").strip()
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql+psycopg2://", 1)
    elif url.startswith("postgresql://"):
        # Keep an explicit driver (e.g. +asyncpg) untouched
        if "+" not in url.split("://")[0]:
            url = url.replace("postgresql://", "postgresql+psycopg2://", 1)
    return url


def get_database_url() -> str:
    """Build the default database URL from the environment."""
    url = os.getenv("DATABASE_URL")
    if url:
        return normalize_database_url(url)

    user = os.getenv("DB_USER", "postgres")
    password = os.getenv("DB_PASSWORD", "")
    host = os.getenv("DB_HOST", "localhost")
    port = os.getenv("DB_PORT", "5432")
    db_name = os.getenv("DB_NAME", "studio")
    sslmode = os.getenv("DB_SSLMODE", "")

    auth = f"{user}:{password}" if password else user
    base_url = f"postgresql+psycopg2://{auth}@{host}:{port}/{db_name}"

    # Required by most hosted Postgres providers
    if sslmode:
        base_url += f"?sslmode={sslmode}"

    return base_url


def is_serverless() -> bool:
    return bool(
        os.getenv("VERCEL")
        or os.getenv("AWS_LAMBDA_FUNCTION_NAME")
        or os.getenv("K_SERVICE")
    )


def engine_options(url: str, pool_env_prefix: str = "DB") -> Dict[str, Any]:
    """Pool settings for a URL; serverless hosts get a minimal pool."""
    if url.startswith("sqlite"):
        return {}
    serverless = is_serverless()
    try:
        pool_size = int(os.getenv(f"{pool_env_prefix}_POOL_SIZE", "1" if serverless else "10"))
    except Exception:
        pool_size = 1 if serverless else 10
    try:
        max_overflow = int(os.getenv(f"{pool_env_prefix}_MAX_OVERFLOW", "0" if serverless else "20"))
    except Exception:
        max_overflow = 0 if serverless else 20
    return {
        "pool_pre_ping": True,
        "pool_size": pool_size,
        "max_overflow": max_overflow,
        "pool_recycle": 1800,
    }


DATABASE_URL = get_database_url()

try:
    engine = create_engine(DATABASE_URL, **engine_options(DATABASE_URL))
except Exception as e:
    logger.error(f"Error creating engine with pool options: {e}")
    engine = create_engine(DATABASE_URL, pool_pre_ping=True)

session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
SessionLocal = scoped_session(session_factory)


def get_db() -> Generator[Session, None, None]:
    """Session generator for dependency injection."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
