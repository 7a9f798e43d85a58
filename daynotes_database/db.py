import os
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from dotenv import load_dotenv

from .locks import ReadWriteLock

# PUBLIC_INTERFACE
def get_database_url():
    """
    Retrieves the database URL from the environment variable DATABASE_URL.
    """
    load_dotenv()
    db_url = os.getenv("DATABASE_URL")
    if not db_url:
        raise ValueError("DATABASE_URL environment variable not set.")
    return db_url


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# PUBLIC_INTERFACE
def create_db_engine(database_url):
    """
    Builds an engine for `database_url`.

    SQLite connections are shared between the API thread pool and the
    background threads, and in-memory databases need a single connection
    to keep their contents.
    """
    kwargs = {}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    engine = create_engine(database_url, future=True, echo=False, **kwargs)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


# PUBLIC_INTERFACE
class Database:
    """
    Engine, session factory and the process-wide read/write lock.

    Every store operation goes through `reading()` or `writing()`. Writers are
    exclusive, so check-then-insert and wipe-then-repopulate are never
    interleaved with anything else, and readers only ever see a committed
    dataset.
    """

    def __init__(self, engine):
        self.engine = engine
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
        self.lock = ReadWriteLock()

    @classmethod
    def from_url(cls, database_url):
        return cls(create_db_engine(database_url))

    @property
    def dialect_name(self):
        return self.engine.dialect.name

    @contextmanager
    def reading(self):
        """Yields a session under the shared lock. Nothing is committed."""
        with self.lock.read_locked():
            session = self.SessionLocal()
            try:
                yield session
            finally:
                session.rollback()
                session.close()

    @contextmanager
    def writing(self):
        """Yields a session under the exclusive lock; commits on success, rolls back on error."""
        with self.lock.write_locked():
            session = self.SessionLocal()
            try:
                yield session
                session.commit()
            except BaseException:
                session.rollback()
                raise
            finally:
                session.close()

    def dispose(self):
        self.engine.dispose()
