from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from leave_portal.core.config import settings

# Support both PostgreSQL and SQLite via centralized settings
DATABASE_URL = settings.database_url

if DATABASE_URL.startswith("postgresql"):
    engine = create_engine(
        DATABASE_URL,
        pool_pre_ping=True,
        pool_timeout=settings.db_timeout_seconds,
        connect_args={"connect_timeout": int(settings.db_timeout_seconds)},
    )
else:
    # SQLite configuration for local development/testing.
    # `timeout` bounds how long a writer waits on the database lock.
    engine = create_engine(
        DATABASE_URL,
        connect_args={"check_same_thread": False, "timeout": settings.db_timeout_seconds},
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

def get_db():
    """
    Session Provider: Provides a database session per request.
    Transaction management is handled explicitly in the Service Layer.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def init_db():
    """
    Registers all leave models and initializes the database schema.
    This should be called during the application startup lifespan.
    """
    # Import all models to ensure they are registered with Base.metadata before create_all
    from leave_portal.models import leave_type, leave_request, leave_balance, notification  # noqa: F401
    Base.metadata.create_all(bind=engine)
