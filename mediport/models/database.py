from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from mediport.config import settings

engine = create_engine(settings.DATABASE_URL, pool_pre_ping=True, pool_size=5)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


class Base(DeclarativeBase):
    pass


def get_db():
    """FastAPI dependency that yields a database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def row_to_dict(row: Base) -> dict:
    """Column values of an ORM row, keyed by attribute name."""
    return {column.key: getattr(row, column.key) for column in row.__mapper__.column_attrs}
