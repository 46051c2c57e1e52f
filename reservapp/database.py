from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from reservapp.config import settings

# Pool sizing only applies to server databases; SQLite uses a single-file pool
engine_kwargs = (
    {"connect_args": {"check_same_thread": False}}
    if settings.is_sqlite
    else {"pool_size": settings.DB_POOL_SIZE, "max_overflow": settings.DB_MAX_OVERFLOW}
)

# One engine per process, shared by every request session
engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,  # Verify connections before using
    echo=settings.DEBUG,  # Log SQL queries in debug mode
    **engine_kwargs,
)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Iterator[Session]:
    """
    FastAPI dependency for database sessions.

    Yields a database session and ensures it's closed after use.

    Usage:
        @app.get("/payments")
        def list_payments(db: Session = Depends(get_db)):
            return PaymentRepository(db).find_many()
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
