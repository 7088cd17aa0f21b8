"""
Declarative ORM base for payroll tables.

Column conventions shared by every model:
    - ``id`` is a uuid4 stored as a 36-character string, so the schema is
      the same on PostgreSQL and SQLite.
    - ``Decimal`` columns are ``Numeric(38, 9)``; no monetary column is a
      float.
    - ``datetime`` columns are timezone-aware.

``TrackedBase`` adds who created a row and when.  ``updated_at`` and
``updated_by_id`` are audit metadata: the immutability listeners let them
change on rows whose payroll figures are frozen.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


class Base(DeclarativeBase):
    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        UUID: UUIDString(),
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(server_default=func.now(), onupdate=func.now())
    created_by_id: Mapped[UUID]
    updated_by_id: Mapped[UUID | None]
