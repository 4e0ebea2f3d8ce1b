from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from workorder_import.core.config import settings
import os

# SQLite file holding schedules, run history and imported work orders
DB_PATH = getattr(settings, "DB_PATH", "data/workorder_import.db")
os.makedirs(os.path.dirname(DB_PATH), exist_ok=True)

SQLALCHEMY_DATABASE_URL = f"sqlite:///{DB_PATH}"

# The scheduler runs imports on worker threads
engine = create_engine(
    SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False}
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

def init_db():
    from workorder_import.db import models  # noqa: F401  registers tables on Base
    Base.metadata.create_all(bind=engine)
