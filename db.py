import logging
from contextlib import contextmanager

from sqlalchemy import create_engine, event, inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from config import Config
from errors import StoreFailure

logger = logging.getLogger(__name__)

# -------------------------------------------------
# SQLALCHEMY ENGINE + SESSION
# -------------------------------------------------
DATABASE_URL = Config.DATABASE_URL


def _make_engine(url):
    if not url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True)

    # sqlite needs check_same_thread=False for the threaded server; an
    # in-memory database must also share one connection across sessions
    kwargs = {"connect_args": {"check_same_thread": False}}
    if url in ("sqlite://", "sqlite:///:memory:"):
        kwargs["poolclass"] = StaticPool
    sqlite_engine = create_engine(url, **kwargs)

    @event.listens_for(sqlite_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return sqlite_engine


engine = _make_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def init_db():
    """Create missing tables and log what the database now holds."""
    # models must be imported so they register with Base.metadata
    import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    tables = inspect(engine).get_table_names()
    logger.info("[DB] Tables ensured: %s", ", ".join(tables))


@contextmanager
def db_session():
    """Yield a session; roll back on any failure and always close.

    Store errors surface as StoreFailure, everything else propagates as is.
    """
    db = SessionLocal()
    try:
        yield db
    except SQLAlchemyError as e:
        db.rollback()
        raise StoreFailure(str(e)) from e
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


# hides password safely
logger.debug("[DB] Connected to: %s", DATABASE_URL.split("@")[-1])
