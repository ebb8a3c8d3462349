"""
Declarative base, shared mixins and column types.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import BigInteger, DateTime, Numeric, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class Uint256(TypeDecorator):
    """
    Arbitrary-precision unsigned integer column.

    NUMERIC(78, 0) holds any uint256. SQLite has no exact decimal type, so
    there the value is kept as a plain integer (test databases only).
    Values always come back as Python ``int``.
    """

    impl = Numeric(78, 0)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(BigInteger())
        return dialect.type_descriptor(Numeric(78, 0))

    def process_bind_param(self, value: Any, dialect) -> Any:
        if value is None:
            return None
        if dialect.name == "sqlite":
            return int(value)
        return Decimal(int(value))

    def process_result_value(self, value: Any, dialect) -> Optional[int]:
        if value is None:
            return None
        return int(value)


class Base(DeclarativeBase):
    """Declarative base for all models."""


class BaseModel(Base):
    """Abstract base model."""

    __abstract__ = True

    def to_dict(self) -> dict:
        return {column.name: getattr(self, column.key) for column in self.__table__.columns}


class TimestampMixin:
    """Row bookkeeping timestamps."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )
