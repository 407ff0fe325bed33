from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from status_tracker.config import settings

_database_url = settings.database_url_fixed
_connect_args = {"check_same_thread": False} if _database_url.startswith("sqlite") else {}

engine = create_engine(_database_url, pool_pre_ping=True, connect_args=_connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
