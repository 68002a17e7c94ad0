"""SQLAlchemy ORM models for the delivery management database.

Three tables: customers, drivers and deliveries. The service never writes
to them; the models exist to describe the schema to the assistant and to
create the tables for local development and tests. Uses SQLAlchemy 2.0
style with Mapped and mapped_column.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def generate_uuid() -> str:
    """Generate a UUID4 string for primary keys."""
    return str(uuid4())


def utc_now() -> datetime:
    return datetime.now(UTC)


class DriverStatus(str, Enum):
    """Availability of a driver."""

    available = "available"
    busy = "busy"
    offline = "offline"


class DeliveryStatus(str, Enum):
    """Status values for deliveries.

    Lifecycle: pending -> assigned -> picked_up -> in_transit -> delivered
               any non-terminal state -> cancelled
    """

    pending = "pending"
    assigned = "assigned"
    picked_up = "picked_up"
    in_transit = "in_transit"
    delivered = "delivered"
    cancelled = "cancelled"


def _in_clause(column: str, enum_cls: type[Enum]) -> str:
    values = ", ".join(f"'{member.value}'" for member in enum_cls)
    return f"{column} IN ({values})"


class Base(DeclarativeBase):
    """Base class for all ORM models."""


class Customer(Base):
    __tablename__ = "customers"

    customer_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    phone: Mapped[Optional[str]] = mapped_column(String(20))
    address: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), default=utc_now)

    deliveries: Mapped[list["Delivery"]] = relationship(back_populates="customer")


class Driver(Base):
    __tablename__ = "drivers"
    __table_args__ = (CheckConstraint(_in_clause("status", DriverStatus), name="ck_drivers_status"),)

    driver_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    phone: Mapped[str] = mapped_column(String(20), nullable=False)
    vehicle_type: Mapped[Optional[str]] = mapped_column(String(50))
    license_number: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[Optional[str]] = mapped_column(
        String(20),
        default=DriverStatus.available.value,
        info={"enum": [s.value for s in DriverStatus]},
    )
    created_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), default=utc_now)

    deliveries: Mapped[list["Delivery"]] = relationship(back_populates="driver")


class Delivery(Base):
    __tablename__ = "deliveries"
    __table_args__ = (
        CheckConstraint(_in_clause("status", DeliveryStatus), name="ck_deliveries_status"),
    )

    delivery_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    customer_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("customers.customer_id"), nullable=False
    )
    driver_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("drivers.driver_id"))
    pickup_address: Mapped[str] = mapped_column(Text, nullable=False)
    delivery_address: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[Optional[str]] = mapped_column(
        String(20),
        default=DeliveryStatus.pending.value,
        info={"enum": [s.value for s in DeliveryStatus]},
    )
    created_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), default=utc_now)
    pickup_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    delivered_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    package_description: Mapped[Optional[str]] = mapped_column(Text)
    delivery_notes: Mapped[Optional[str]] = mapped_column(Text)

    customer: Mapped[Customer] = relationship(back_populates="deliveries")
    driver: Mapped[Optional[Driver]] = relationship(back_populates="deliveries")


def describe_schema() -> dict[str, Any]:
    """Describe the tables as plain metadata for the assistant's instructions.

    The description is informational only; nothing here is enforced at query
    time.

    Returns:
        ``{"tables": {name: {"columns": {column: {...}}}}}`` with the column
        type, primary key / required / unique flags, foreign key references
        and enumerated status values.
    """
    tables: dict[str, Any] = {}
    for table in Base.metadata.sorted_tables:
        columns: dict[str, Any] = {}
        for column in table.columns:
            info: dict[str, Any] = {"type": str(column.type)}
            if column.primary_key:
                info["isPrimary"] = True
            elif not column.nullable:
                info["isRequired"] = True
            if column.unique:
                info["isUnique"] = True
            for fk in column.foreign_keys:
                info["references"] = {
                    "table": fk.column.table.name,
                    "column": fk.column.name,
                }
            if "enum" in column.info:
                info["enum"] = list(column.info["enum"])
            columns[column.name] = info
        tables[table.name] = {"columns": columns}
    return {"tables": tables}
