"""Database connection and session management."""

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from hrflow.models.base import Base


@dataclass
class DatabaseConfig:
    """Database configuration settings."""
    
    host: str = "localhost"
    port: int = 5432
    database: str = "hrflow"
    username: str = "postgres"
    password: str = ""
    pool_size: int = 5
    max_overflow: int = 10
    echo: bool = False
    url_override: Optional[str] = None
    
    @property
    def url(self) -> str:
        """Generate SQLAlchemy database URL."""
        if self.url_override:
            return self.url_override
        return f"postgresql://{self.username}:{self.password}@{self.host}:{self.port}/{self.database}"


def create_db_engine(config: DatabaseConfig) -> Engine:
    """
    Build an engine for the configured URL.
    
    SQLite URLs (used by tests and local runs) share one connection so an
    in-memory database is visible across sessions and threads.
    """
    if config.url.startswith("sqlite"):
        return create_engine(
            config.url,
            echo=config.echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    
    return create_engine(
        config.url,
        pool_size=config.pool_size,
        max_overflow=config.max_overflow,
        echo=config.echo,
        pool_pre_ping=True,  # Verify connections before use
    )


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Create a session factory bound to the given engine."""
    return sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


@contextmanager
def session_scope(session_factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """
    Context manager for a unit of work.
    
    Commits on success, rolls back on exception. Used by repositories and
    background workers, which are handed the factory rather than a session.
    """
    session = session_factory()
    
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(engine: Engine) -> None:
    """
    Initialize database by creating all tables.
    
    Should only be used in development/testing.
    Use Alembic migrations for production.
    """
    import hrflow.models  # noqa: F401  registers mapped tables
    
    Base.metadata.create_all(bind=engine)
