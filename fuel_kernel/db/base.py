"""
Module: fuel_kernel.db.base
Responsibility: Declarative base for every fuel ORM model: UUID keys stored
    portably, Decimal columns at Numeric(38, 9) and the audit columns of
    TrackedBase.
Architecture position: Kernel > DB.  Lowest import target of the kernel;
    every model module imports from here.

Invariants enforced:
    - Primary keys are uuid4 values kept as 36-character strings, so the
      same schema runs on PostgreSQL and SQLite.
    - Liters and costs are Numeric(38, 9), never float.
    - Tracked rows always name their creator (created_by_id NOT NULL).
"""

from datetime import date, datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, Date, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """uuid.UUID in Python, String(36) in the database."""

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
        date: Date,
        UUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Adds who/when columns.

    ``created_at`` is set by the database on insert; ``updated_at`` moves on
    every update.  Services set ``updated_by_id`` when they modify a row.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )
    created_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    updated_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
