"""
Module: ledger_kernel.db.base
Responsibility: Declarative base classes for all ledger ORM models.  Provides
    the UUID primary key convention, the type annotation map that pins money to
    fixed-point columns, and the TrackedBase mixin for actor/timestamp columns.
Architecture position: Kernel > DB.  Lowest-level import target in the kernel;
    every model file imports from here.  MUST NOT import from models/,
    services/, selectors/, or domain/.

Invariants enforced:
    - UUID primary keys (uuid4) on every table, stored as String(36) so the
      same schema runs on PostgreSQL and SQLite.
    - Decimal maps to ExactDecimal: Numeric(38, 9) where the driver has a
      native decimal, canonical decimal text elsewhere (SQLite).  Floats are
      never used for amounts, in storage or on load.
    - Every tracked row records the actor that created it.

Failure modes:
    - IntegrityError on a duplicate primary key.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """
    UUID stored as String(36) for cross-database portability.

    Guarantees:
        - UUID -> str on bind, str -> UUID on load.
        - Plain strings are accepted on bind and normalized through UUID().
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, PyUUID):
            return str(value)
        return str(PyUUID(str(value)))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return PyUUID(value)


class ExactDecimal(TypeDecorator):
    """
    Decimal column that never passes through float.

    PostgreSQL stores NUMERIC(38, 9) natively.  pysqlite has no decimal
    type and would bind a Numeric as REAL, so there the value is stored as
    its plain decimal text and parsed back with Decimal().

    Guarantees:
        - Loaded values compare equal to the bound values on every dialect.
        - Aggregates over these columns are exact only where
          ``dialect.supports_native_decimal``; elsewhere callers sum the
          loaded Decimals.
    """

    impl = Numeric(38, 9)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.supports_native_decimal:
            return dialect.type_descriptor(Numeric(38, 9))
        return dialect.type_descriptor(String(48))

    def process_bind_param(self, value, dialect):
        if value is None or dialect.supports_native_decimal:
            return value
        return format(Decimal(value), "f")

    def process_result_value(self, value, dialect):
        if value is None or dialect.supports_native_decimal:
            return value
        return Decimal(value)


class Base(DeclarativeBase):
    """
    Declarative base for all ledger models.

    Contract:
        Every ORM model inherits from Base (or TrackedBase) and gets a uuid4
        primary key plus consistent column types for annotated attributes.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: ExactDecimal(),
        datetime: DateTime(timezone=True),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class TrackedBase(Base):
    """
    Abstract base with created/updated timestamps and actor columns.

    Guarantees:
        - created_at is set by the database on INSERT.
        - updated_at is refreshed on every UPDATE.
        - created_by_id is NOT NULL; updated_by_id is optional.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    created_by_id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    updated_by_id: Mapped[PyUUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )


UUID = PyUUID
