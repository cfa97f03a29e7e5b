"""Database configuration and initialization."""
from sqlalchemy import BigInteger, Integer, create_engine, event
from sqlalchemy.orm import scoped_session, sessionmaker, declarative_base

# BIGINT ids on PostgreSQL; SQLite only autoincrements INTEGER PRIMARY KEY
BigId = BigInteger().with_variant(Integer, 'sqlite')

# Create SQLAlchemy base
Base = declarative_base()

# Global session and engine
engine = None
db_session = None


def _configure_sqlite(engine):
    """
    SQLite connection hooks.

    pysqlite defers BEGIN until the first write, so two checkouts can both read
    and then deadlock on the lock upgrade. Emitting BEGIN IMMEDIATE makes
    writers queue on the database lock (bounded by the connect timeout).
    """

    @event.listens_for(engine, 'connect')
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute('PRAGMA foreign_keys=ON')
        cursor.close()

    @event.listens_for(engine, 'begin')
    def _on_begin(conn):
        conn.exec_driver_sql('BEGIN IMMEDIATE')


def init_db(app):
    """Initialize database connection."""
    global engine, db_session

    database_uri = app.config['SQLALCHEMY_DATABASE_URI']
    is_sqlite = database_uri.startswith('sqlite')

    engine_kwargs = {
        'echo': app.config.get('SQLALCHEMY_ECHO', False),
        'pool_pre_ping': True,  # Enable connection health checks
    }
    if is_sqlite:
        engine_kwargs['connect_args'] = {'timeout': 30, 'check_same_thread': False}
    else:
        engine_kwargs['pool_size'] = 10
        engine_kwargs['max_overflow'] = 20

    engine = create_engine(database_uri, **engine_kwargs)
    if is_sqlite:
        _configure_sqlite(engine)

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
    """Create every table registered on Base."""
    from retailpos import models  # noqa: F401
    Base.metadata.create_all(bind=engine)


def get_session():
    """Get database session."""
    return db_session


class UnitOfWork:
    """
    All-or-nothing boundary around the current session transaction.

    Finishes exactly once: commit when the block exits cleanly, rollback when
    it raises. Collaborators receive ``uow.session`` and must never commit it
    themselves.
    """

    def __init__(self, session):
        self.session = session
        self._finished = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is None:
            self.commit()
        else:
            self.rollback()
        return False

    @property
    def finished(self):
        return self._finished

    def commit(self):
        if self._finished:
            raise RuntimeError('Unit of work already finished')
        self._finished = True
        try:
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    def rollback(self):
        if self._finished:
            return
        self._finished = True
        self.session.rollback()
