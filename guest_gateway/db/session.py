import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import QueuePool

from guest_gateway.core.config import get_database_url, get_store_timeout

logger = logging.getLogger(__name__)

SQLALCHEMY_DATABASE_URL = get_database_url()


def build_engine(url: str):
    """Create the engine for the quota store.

    Postgres gets a pooled engine with bounded connect/checkout timeouts so a
    dead store fails the request instead of hanging it. SQLite (local dev and
    tests) needs cross-thread access and a busy timeout for concurrent writers.
    """
    timeout = get_store_timeout()
    if url.startswith("sqlite"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False, "timeout": timeout},
        )
    return create_engine(
        url,
        poolclass=QueuePool,
        pool_size=10,  # Number of connections to maintain persistently
        max_overflow=20,  # Maximum number of connections to create beyond pool_size
        pool_timeout=timeout,  # Seconds to wait before giving up on getting a connection
        pool_pre_ping=True,  # Verify connections before using them (handles stale connections)
        pool_recycle=3600,  # Recycle connections after 1 hour to prevent stale connections
        connect_args={"connect_timeout": int(timeout)},
        echo=False
    )


# No DATABASE_URL means no engine: requests fail closed with CONFIG_ERROR
if SQLALCHEMY_DATABASE_URL:
    engine = build_engine(SQLALCHEMY_DATABASE_URL)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
else:
    logger.error("DATABASE_URL is not set. Guest requests will be rejected with CONFIG_ERROR.")
    engine = None
    SessionLocal = None


def get_db():
    if SessionLocal is None:
        yield None
        return
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
