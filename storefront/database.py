"""Database configuration and initialization."""
from sqlalchemy import create_engine
from sqlalchemy.orm import scoped_session, sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

# Create SQLAlchemy base
Base = declarative_base()

# Global session and engine
engine = None
db_session = None


def _engine_options(app):
    """Pool settings per backend (SQLite has no connection pool to size)."""
    database_uri = app.config['SQLALCHEMY_DATABASE_URI']
    options = {'echo': app.config.get('SQLALCHEMY_ECHO', False)}

    if database_uri.startswith('sqlite'):
        # In-memory databases must share one connection across the app
        options['connect_args'] = {'check_same_thread': False}
        options['poolclass'] = StaticPool
    else:
        options['pool_pre_ping'] = True  # Enable connection health checks
        options['pool_size'] = 10
        options['max_overflow'] = 20

    return options


def init_db(app):
    """Initialize database connection."""
    global engine, db_session

    database_uri = app.config['SQLALCHEMY_DATABASE_URI']
    engine = create_engine(database_uri, **_engine_options(app))

    db_session = scoped_session(
        sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=engine,
            expire_on_commit=app.config.get('SQLALCHEMY_EXPIRE_ON_COMMIT', True)
        )
    )

    # Register teardown
    @app.teardown_appcontext
    def shutdown_session(exception=None):
        """Close database session and rollback on error."""
        if exception:
            db_session.rollback()
        db_session.remove()


def create_all():
    """Create all tables for the registered models."""
    import storefront.models  # noqa: F401  (register mappers)
    Base.metadata.create_all(bind=engine)


def drop_all():
    """Drop all tables (used by the test-suite)."""
    import storefront.models  # noqa: F401
    Base.metadata.drop_all(bind=engine)


def get_session():
    """Get database session."""
    return db_session
