"""
SQLAlchemy declarative base and common model mixins.

Timestamps are assigned on the Python side so that values are available on
the instance immediately after a flush, without an extra round trip to
refresh server-generated columns inside an async session.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import DateTime, Integer
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


class Base(AsyncAttrs, DeclarativeBase):
    """
    Base class for all SQLAlchemy models with async support.

    Provides async attribute loading plus serialization and repr helpers
    shared by every table.
    """

    __abstract__ = True

    def to_dict(self, exclude: Optional[set[str]] = None) -> Dict[str, Any]:
        """
        Convert model instance to a JSON friendly dictionary.

        Args:
            exclude: Set of attribute names to exclude from output

        Returns:
            Dictionary of column values; datetimes are ISO formatted and
            decimals are rendered as strings to keep exact cents
        """
        exclude = exclude or set()
        result: Dict[str, Any] = {}

        for column in self.__table__.columns:
            if column.name in exclude:
                continue
            value = getattr(self, column.key)
            if isinstance(value, datetime):
                result[column.name] = value.isoformat()
            elif isinstance(value, Decimal):
                result[column.name] = str(value)
            else:
                result[column.name] = value

        return result

    def __repr__(self) -> str:
        pk_values = []
        for column in self.__table__.primary_key.columns:
            value = getattr(self, column.key, None)
            if value is not None:
                pk_values.append(f"{column.name}={value!r}")

        pk_str = ", ".join(pk_values) if pk_values else "transient"
        return f"<{self.__class__.__name__}({pk_str})>"


class IntegerIdMixin:
    """Surrogate auto-incrementing integer primary key."""

    @declared_attr
    def id(cls) -> Mapped[int]:
        return mapped_column(
            Integer,
            primary_key=True,
            autoincrement=True,
            comment="Surrogate identifier",
        )


class TimestampMixin:
    """
    Mixin for created_at / updated_at columns.

    ``updated_at`` is refreshed by the ORM on every UPDATE; the order state
    machine also sets it explicitly so that the new value is visible on the
    instance before commit.
    """

    @declared_attr
    def created_at(cls) -> Mapped[datetime]:
        return mapped_column(
            DateTime(timezone=True),
            nullable=False,
            default=utc_now,
            comment="Timestamp when record was created",
        )

    @declared_attr
    def updated_at(cls) -> Mapped[datetime]:
        return mapped_column(
            DateTime(timezone=True),
            nullable=False,
            default=utc_now,
            onupdate=utc_now,
            comment="Timestamp when record was last updated",
        )
