"""Database configuration and initialization."""
from sqlalchemy import BigInteger, Integer, create_engine, event
from sqlalchemy.engine import make_url
from sqlalchemy.orm import scoped_session, sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

# Create SQLAlchemy base
Base = declarative_base()

# Global session and engine
engine = None
db_session = None

SQLITE_BUSY_TIMEOUT = 30


def _is_sqlite_memory(url):
    return url.get_backend_name() == 'sqlite' and url.database in (None, '', ':memory:')


def _engine_options(database_uri, echo):
    """Pool settings for the configured backend."""
    url = make_url(database_uri)
    if _is_sqlite_memory(url):
        # In-memory SQLite must share one connection across sessions
        return {
            'echo': echo,
            'connect_args': {'check_same_thread': False},
            'poolclass': StaticPool,
        }
    if url.get_backend_name() == 'sqlite':
        # One connection per thread; writers wait on the database lock
        return {
            'echo': echo,
            'connect_args': {'check_same_thread': False, 'timeout': SQLITE_BUSY_TIMEOUT},
        }
    return {
        'echo': echo,
        'pool_pre_ping': True,  # Enable connection health checks
        'pool_size': 10,
        'max_overflow': 20,
    }


def _configure_sqlite(sqlite_engine, serialize_writers):
    """
    Foreign keys on every connection, and for file databases a write lock taken
    at BEGIN.

    SQLite has no SELECT ... FOR UPDATE, so a kit or settlement could read a
    stock row another transaction is about to change. BEGIN IMMEDIATE makes
    those transactions queue on the database lock instead.
    """
    @event.listens_for(sqlite_engine, 'connect')
    def _on_connect(dbapi_connection, connection_record):
        if serialize_writers:
            # Transactions are begun explicitly below
            dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute('PRAGMA foreign_keys=ON')
        cursor.close()

    if serialize_writers:
        @event.listens_for(sqlite_engine, 'begin')
        def _begin_immediate(conn):
            conn.exec_driver_sql('BEGIN IMMEDIATE')


def build_engine(database_uri, echo=False):
    """Create an engine for the URI with the backend specific setup applied."""
    new_engine = create_engine(database_uri, **_engine_options(database_uri, echo))
    if new_engine.dialect.name == 'sqlite':
        _configure_sqlite(new_engine, serialize_writers=not _is_sqlite_memory(new_engine.url))
    return new_engine


def init_db(app):
    """Initialize database connection."""
    global engine, db_session

    engine = build_engine(
        app.config['SQLALCHEMY_DATABASE_URI'],
        app.config.get('SQLALCHEMY_ECHO', False)
    )

    db_session = scoped_session(
        sessionmaker(autocommit=False, autoflush=False, bind=engine)
    )

    Base.query = db_session.query_property()

    # Register teardown
    @app.teardown_appcontext
    def shutdown_session(exception=None):
        """Close database session and rollback on error."""
        if exception:
            db_session.rollback()
        db_session.remove()


def create_all():
    """Create every table known to the declarative base."""
    import mrp.models  # noqa: F401  (registers the mappers)
    Base.metadata.create_all(bind=engine)


def get_session():
    """Get database session."""
    return db_session


# Surrogate keys: BIGINT on PostgreSQL, INTEGER on SQLite so rowid autoincrement applies
BigIntPK = BigInteger().with_variant(Integer, 'sqlite')
