"""Delivery database schema and engine management."""

from deliverychat.db.connection import create_engine, init_db
from deliverychat.db.models import (
    Base,
    Customer,
    Delivery,
    DeliveryStatus,
    Driver,
    DriverStatus,
    describe_schema,
)
from deliverychat.db.seed import seed_sample_data

__all__ = [
    # Models
    "Base",
    "Customer",
    "Driver",
    "Delivery",
    # Enums
    "DeliveryStatus",
    "DriverStatus",
    "describe_schema",
    # Connection
    "create_engine",
    "init_db",
    # Sample data
    "seed_sample_data",
]
