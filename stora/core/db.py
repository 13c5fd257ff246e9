import logging
from contextlib import contextmanager
from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import scoped_session, sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool
from stora.configs import DB_URI, DEBUG
from stora.core.exceptions import StoraError, StorageFailure

logger = logging.getLogger(__name__)
# Only use client_encoding for PostgreSQL, not SQLite
engine_kwargs = {'echo': DEBUG}
if DB_URI.startswith('sqlite'):
    # A single shared connection keeps in-memory databases visible to
    # FastAPI's worker threads.
    engine_kwargs['connect_args'] = {'check_same_thread': False}
    engine_kwargs['poolclass'] = StaticPool
else:
    engine_kwargs['client_encoding'] = 'utf8'
    engine_kwargs['pool_pre_ping'] = True
engine = create_engine(DB_URI, **engine_kwargs)
session = scoped_session(sessionmaker(
    bind=engine, autocommit=False, autoflush=False, expire_on_commit=False))


class StoraBase:

    @classmethod
    def get_many(cls, db, offset=None, limit=None, **filters):
        return db.query(cls).filter_by(**filters).offset(offset).limit(limit).all()


Base = declarative_base(cls=StoraBase)


def init():
    try:
        Base.metadata.create_all(bind=engine)
        return session
    except Exception as e:
        logger.warning(f"[WARNING] Database initialization failed: {e}")


@contextmanager
def atomic(db, on_conflict=None):
    """Commit everything done inside the block or nothing at all.

    Ledger errors roll back and propagate unchanged; database errors roll
    back and surface as StorageFailure, or as `on_conflict(error)` for
    constraint violations when given.
    """
    try:
        yield db
        db.commit()
    except StoraError:
        db.rollback()
        raise
    except IntegrityError as e:
        db.rollback()
        if on_conflict is not None:
            raise on_conflict(e) from e
        logger.error(f"Constraint violation, transaction rolled back: {e}")
        raise StorageFailure(f"Failed to commit transaction: {e.orig}.") from e
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Transaction rolled back: {e}")
        raise StorageFailure(f"Failed to commit transaction: {e}.") from e


def get_db():
    """FastAPI dependency yielding a fresh session per request."""
    db = session.session_factory()
    try:
        yield db
    finally:
        db.close()
