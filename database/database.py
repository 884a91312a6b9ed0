"""
Database connection and session management
Postgres holds reference problem samples and the cost ledger
"""

import os

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

# Database URL from environment
POSTGRES_USER = os.getenv("POSTGRES_USER", "study_user")
POSTGRES_PASSWORD = os.getenv("POSTGRES_PASSWORD", "study_pass")
POSTGRES_HOST = os.getenv("POSTGRES_HOST", "localhost")
POSTGRES_PORT = os.getenv("POSTGRES_PORT", "5432")
POSTGRES_DB = os.getenv("POSTGRES_DB", "study_rooms")

DATABASE_URL = f"postgresql://{POSTGRES_USER}:{POSTGRES_PASSWORD}@{POSTGRES_HOST}:{POSTGRES_PORT}/{POSTGRES_DB}"

# Base class for declarative models
Base = declarative_base()


def create_db_engine(url: str = DATABASE_URL):
    """Create the process-wide engine (called once at application start)."""
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
    )


def create_session_factory(engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)
