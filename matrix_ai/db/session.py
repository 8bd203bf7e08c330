"""
Database Session Management
SQLite for local development, PostgreSQL for production
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from matrix_ai.config.settings import settings

DATABASE_URL = settings.DATABASE_URL

engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False} if "sqlite" in DATABASE_URL else {}
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

def get_db():
    """Dependency for FastAPI routes"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def init_db():
    """Initialize database tables"""
    # Register the mapped classes before create_all
    from matrix_ai.db.models import common  # noqa: F401
    Base.metadata.create_all(bind=engine)
