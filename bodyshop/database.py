from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from bodyshop.config import settings

# 1. Connection engine
# 'check_same_thread' is only needed for SQLite
connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(settings.DATABASE_URL, connect_args=connect_args)

# 2. Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# 3. Declarative base
# Every table model inherits from this
Base = declarative_base()


def get_db():
    """Yields one session per request and always closes it."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
