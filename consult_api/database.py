from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker, declarative_base

from config import settings

DATABASE_URL = settings.database_url

# SQLite needs check_same_thread disabled for the threaded server. Other
# backends take the URL as is.
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=connect_args)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


@contextmanager
def transaction(db: Session):
    """Commit everything done inside the block, or roll all of it back."""
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
