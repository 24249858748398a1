"""
Database engine and session for persisted client storage. SQLite by default.
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from session_client.config import STORE_URL
from session_client.models import Base

# SQLite: in-memory needs StaticPool so all connections share the same DB (for tests)
if STORE_URL.startswith("sqlite:///:memory:"):
    engine = create_engine(
        STORE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
else:
    connect_args = {"check_same_thread": False} if "sqlite" in STORE_URL else {}
    engine = create_engine(STORE_URL, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db() -> None:
    """Create the storage table if missing."""
    Base.metadata.create_all(bind=engine)
