"""Standard column definitions for consistency."""
from uuid import uuid4

from sqlalchemy import Column, ForeignKey, Uuid
from sqlalchemy.types import DateTime

from apiwatch.clock import utcnow


def uuid_pk():
    return Column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
        nullable=False
    )

def uuid_fk(table: str, nullable: bool = False, ondelete: str = "CASCADE"):
    return Column(
        Uuid(as_uuid=True),
        ForeignKey(f"{table}.id", ondelete=ondelete),
        nullable=nullable,
        index=True
    )

def timestamp_created():
    # Naive UTC; the engine passes explicit values from its clock
    return Column(
        DateTime,
        default=utcnow,
        nullable=False,
        index=True
    )

def timestamp_updated():
    return Column(
        DateTime,
        onupdate=utcnow
    )
