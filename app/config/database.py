"""Database configuration and connection setup"""
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import QueuePool

from app.config.settings import get_settings

settings = get_settings()


def build_engine(database_url: str) -> Engine:
    """Create an engine with connection pooling for the given URL"""
    if database_url.startswith("sqlite"):
        # SQLite busy timeout doubles as the booking lock timeout
        return create_engine(
            database_url,
            connect_args={
                "check_same_thread": False,
                "timeout": settings.BOOKING_LOCK_TIMEOUT_MS / 1000,
            },
            echo=False,
        )

    return create_engine(
        database_url,
        poolclass=QueuePool,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_pre_ping=True,
        echo=False,
    )


# Create database engine with connection pooling
engine = build_engine(settings.DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """Database dependency for FastAPI"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables():
    """Create all booking engine tables that do not exist yet"""
    from app.models import Base

    print("Creating all tables...")
    Base.metadata.create_all(bind=engine)
    print("✅ Database tables created successfully!")


if __name__ == "__main__":
    create_tables()
