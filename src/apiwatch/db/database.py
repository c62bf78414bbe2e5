from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase
from sqlalchemy.pool import NullPool
import os

from apiwatch.config import DEFAULT_DATABASE_URL

# ---------------------------------------------------------
# Configure the database URL (loads from environment variable)
# ---------------------------------------------------------
DATABASE_URL = os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)

# ---------------------------------------------------------
# SQLAlchemy Base class
# ---------------------------------------------------------
class Base(DeclarativeBase):
    pass

# ---------------------------------------------------------
# Create engine
# ---------------------------------------------------------
# NullPool prevents connection reuse issues during local dev / hot reload.
engine = create_engine(
    DATABASE_URL,
    poolclass=NullPool,
    echo=False,  # set True to log SQL
)

# ---------------------------------------------------------
# SessionLocal factory
# ---------------------------------------------------------
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

