"""
Database setup using SQLAlchemy.

The persisted sample file is a small SQLite database. We create:
- an Engine bound to a given state file (one per load/save)
- a Session factory for that engine
- a Base class to declare ORM models
"""

from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

# Base class for all ORM models
Base = declarative_base()


def make_engine(path: Path) -> Engine:
    """Engine for the SQLite file at `path`."""
    return create_engine(
        f"sqlite:///{path}",
        future=True,
        echo=False,  # set True if you want to see SQL in the logs
    )


def make_session_factory(engine: Engine) -> sessionmaker:
    # Session factory: each load or save is one unit of work
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine,
        future=True,
    )
