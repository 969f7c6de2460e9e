"""
Database connection setup.

Uses DATABASE_URL when provided, otherwise assembles a direct TCP MySQL URL
from the DB_* environment variables.
"""
import os
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Database configuration
DB_USER = os.getenv("DB_USER")
DB_PASSWORD = os.getenv("DB_PASSWORD")
DB_NAME = os.getenv("DB_NAME")
DB_HOST = os.getenv("DB_HOST", "localhost")
DB_PORT = int(os.getenv("DB_PORT", "3306"))

# Create database URL
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"mysql+pymysql://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}",
)


def engine_options(url: str) -> dict:
    """
    Keyword arguments for create_engine.

    Server backends run at READ COMMITTED: after the per-tutor row lock is
    granted, the conflict check and the rating recompute must see rows that
    the previous lock holder committed. InnoDB's default REPEATABLE READ would
    keep serving the snapshot taken by the first read of the request.
    """
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}, "echo": False}
    # Connection pooling
    return {
        "isolation_level": "READ COMMITTED",
        "pool_size": 5,
        "max_overflow": 10,
        "pool_timeout": 30,
        "pool_recycle": 3600,
        "pool_pre_ping": True,
        "echo": False,  # Set to True for SQL debugging
    }


engine = create_engine(DATABASE_URL, **engine_options(DATABASE_URL))

# Create SessionLocal class for database sessions
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for SQLAlchemy models
Base = declarative_base()


def get_db():
    """
    Dependency function to get database session.
    Use this in FastAPI endpoints with Depends(get_db).

    Example:
        @app.get("/tutors")
        def get_tutors(db: Session = Depends(get_db)):
            return db.query(User).all()
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
