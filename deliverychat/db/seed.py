"""Sample data for local development and tests.

Inserts a small, fixed set of customers, drivers and deliveries so the
assistant has something to query. Not used by the running service.
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from deliverychat.db.models import Customer, Delivery, DeliveryStatus, Driver, DriverStatus

logger = logging.getLogger(__name__)


def sample_rows() -> list[Customer | Driver | Delivery]:
    """Build unsaved ORM objects for the sample data set."""
    alice = Customer(
        customer_id="c0000000-0000-0000-0000-000000000001",
        name="Alice Martin",
        email="alice@example.com",
        phone="555-0101",
        address="12 Harbor Street, Springfield",
    )
    bob = Customer(
        customer_id="c0000000-0000-0000-0000-000000000002",
        name="Bob Chen",
        email="bob@example.com",
        address="48 Mill Road, Springfield",
    )
    dana = Driver(
        driver_id="d0000000-0000-0000-0000-000000000001",
        name="Dana Ruiz",
        email="dana@example.com",
        phone="555-0201",
        vehicle_type="van",
        license_number="DR-4471",
        status=DriverStatus.busy.value,
    )
    eli = Driver(
        driver_id="d0000000-0000-0000-0000-000000000002",
        name="Eli Novak",
        email="eli@example.com",
        phone="555-0202",
        vehicle_type="bike",
        license_number="EN-1180",
        status=DriverStatus.available.value,
    )
    deliveries = [
        Delivery(
            delivery_id="e0000000-0000-0000-0000-000000000001",
            customer_id=alice.customer_id,
            pickup_address="Warehouse A, 1 Dock Lane",
            delivery_address=alice.address,
            status=DeliveryStatus.pending.value,
            package_description="Two boxes of books",
        ),
        Delivery(
            delivery_id="e0000000-0000-0000-0000-000000000002",
            customer_id=bob.customer_id,
            pickup_address="Warehouse A, 1 Dock Lane",
            delivery_address=bob.address,
            status=DeliveryStatus.pending.value,
            package_description="Office chair",
        ),
        Delivery(
            delivery_id="e0000000-0000-0000-0000-000000000003",
            customer_id=alice.customer_id,
            driver_id=dana.driver_id,
            pickup_address="Warehouse B, 9 Rail Yard",
            delivery_address=alice.address,
            status=DeliveryStatus.in_transit.value,
            package_description="Groceries",
        ),
        Delivery(
            delivery_id="e0000000-0000-0000-0000-000000000004",
            customer_id=bob.customer_id,
            driver_id=eli.driver_id,
            pickup_address="Warehouse B, 9 Rail Yard",
            delivery_address=bob.address,
            status=DeliveryStatus.delivered.value,
            delivery_notes="Left with reception",
        ),
    ]
    return [alice, bob, dana, eli, *deliveries]


async def seed_sample_data(engine: AsyncEngine) -> int:
    """Insert the sample data set unless customers already exist.

    Returns:
        Number of rows inserted (0 if the database was already seeded).
    """
    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    async with session_factory() as session:
        existing = await session.scalar(select(func.count()).select_from(Customer))
        if existing:
            logger.info("Sample data skipped: %d customer(s) already present", existing)
            return 0
        rows = sample_rows()
        session.add_all(rows)
        await session.commit()
    logger.info("Inserted %d sample rows", len(rows))
    return len(rows)
