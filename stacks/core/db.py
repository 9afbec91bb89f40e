import logging
from contextlib import contextmanager
from sqlalchemy import create_engine, event
from sqlalchemy.orm import scoped_session, sessionmaker, declarative_base
from stacks.configs import DB_URI, DEBUG

logger = logging.getLogger(__name__)


def make_engine(uri=DB_URI, echo=DEBUG):
    """Builds an engine for `uri`.

    SQLite connections open every transaction with BEGIN IMMEDIATE so
    concurrent writers queue on the database lock rather than failing
    while upgrading a read lock.
    """
    if not uri.startswith('sqlite'):
        return create_engine(uri, echo=echo, client_encoding='utf8')

    sqlite_engine = create_engine(
        uri, echo=echo,
        connect_args={'check_same_thread': False, 'timeout': 30})

    @event.listens_for(sqlite_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # hand transaction control to the "begin" hook below
        dbapi_connection.isolation_level = None
        dbapi_connection.execute("PRAGMA foreign_keys=ON")

    @event.listens_for(sqlite_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return sqlite_engine


engine = make_engine()
session = scoped_session(sessionmaker(
    bind=engine, autocommit=False, autoflush=False, expire_on_commit=False))


class StacksBase:
    @classmethod
    def get_many(cls, offset=None, limit=None):
        return session.query(cls).order_by(cls.id).offset(offset).limit(limit).all()

Base = declarative_base(cls=StacksBase)


@contextmanager
def transaction():
    """One unit of work on the thread's session: commits on success,
    rolls back on any error and always releases the connection.
    """
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def bind(new_engine):
    """Points the scoped session (and `init`) at a different engine."""
    global engine
    session.remove()
    session.configure(bind=new_engine)
    engine = new_engine
    return engine


def init():
    try:
        Base.metadata.create_all(bind=engine)
        return session
    except Exception as e:
        logger.warning(f"[WARNING] Database initialization failed: {e}")
