"""
Database connection for FireLog

One database holds the reference hierarchy (provinces, counties, fire
departments), the auth tables owned by auth_client.py, profiles and incidents.
"""

import os

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

DATABASE_URL = os.environ.get("FIRELOG_DATABASE_URL", "postgresql:///firelog_db")


def build_engine(url: str):
    if url.startswith("sqlite"):
        # Local development / tests
        return create_engine(url, connect_args={"check_same_thread": False})

    return create_engine(
        url,
        pool_size=10,           # Base connections to keep open
        max_overflow=20,        # Additional connections when busy (30 total max)
        pool_timeout=30,        # Seconds to wait for connection before error
        pool_recycle=1800,      # Recycle connections after 30 min (prevents stale)
        pool_pre_ping=True,     # Test connections before using (handles dropped connections)
    )


engine = build_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
