"""Database engine and session handling.

Services open a short-lived session per operation through `db.session()`.
Sessions keep loaded attributes after commit, so rows returned from a
service stay readable once the session is closed.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from diamondtier.logging_config import get_logger
from diamondtier.settings import settings
from diamondtier.storage.models import Base

logger = get_logger(__name__)


def load_models() -> None:
    """Import every model module so Base.metadata knows all tables."""
    import diamondtier.affiliates.models  # noqa: F401
    import diamondtier.auth.models  # noqa: F401
    import diamondtier.storage.models  # noqa: F401


class Database:
    """Engine plus session factory for one database URL."""

    def __init__(self, database_url: str | None = None):
        self.database_url = database_url or settings.database_url

        # SQLite connections are shared with the server's worker threads
        connect_args = {"check_same_thread": False} if self.database_url.startswith("sqlite") else {}

        self.engine = create_engine(
            self.database_url,
            echo=settings.env == "development",
            pool_pre_ping=True,
            connect_args=connect_args,
        )
        self.SessionLocal = sessionmaker(
            bind=self.engine,
            autoflush=False,
            expire_on_commit=False,
        )
        logger.info("database_initialized", url=self.engine.url.render_as_string(hide_password=True))

    def create_tables(self) -> None:
        """Create missing tables. Migrations own schema changes in production."""
        load_models()
        Base.metadata.create_all(bind=self.engine)
        logger.info("tables_created", tables=len(Base.metadata.tables))

    def drop_tables(self) -> None:
        load_models()
        Base.metadata.drop_all(bind=self.engine)
        logger.warning("tables_dropped")

    def ping(self) -> bool:
        """True when the database answers a trivial query."""
        try:
            with self.engine.connect() as connection:
                connection.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.error("database_unreachable", error=str(e))
            return False

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """Session committed on success and rolled back on any error.

        Yields:
            Database session
        """
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            logger.debug("session_rolled_back", error_type=type(e).__name__)
            raise
        finally:
            session.close()


# Global database instance
db = Database()
