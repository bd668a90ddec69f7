import os
import sqlite3
import uuid
from datetime import datetime

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db import Base

# Register UUID adapter for SQLite - store as string
sqlite3.register_adapter(uuid.UUID, lambda u: str(u))


# Monkey-patch SQLAlchemy's UUID type for SQLite compatibility
# This must happen before any models are imported
from sqlalchemy.sql import sqltypes

_original_uuid_bind_processor = sqltypes.Uuid.bind_processor
_original_uuid_result_processor = sqltypes.Uuid.result_processor


def _sqlite_uuid_bind_processor(self, dialect):
    if dialect.name == "sqlite":
        def process(value):
            if value is not None:
                if isinstance(value, uuid.UUID):
                    return str(value)
                return str(uuid.UUID(value)) if value else None
            return None
        return process
    return _original_uuid_bind_processor(self, dialect)


def _sqlite_uuid_result_processor(self, dialect, coltype):
    if dialect.name == "sqlite":
        def process(value):
            if value is not None:
                if isinstance(value, uuid.UUID):
                    return value
                return uuid.UUID(value) if value else None
            return None
        return process
    return _original_uuid_result_processor(self, dialect, coltype)


setattr(sqltypes.Uuid, "bind_processor", _sqlite_uuid_bind_processor)
setattr(sqltypes.Uuid, "result_processor", _sqlite_uuid_result_processor)

import app.models  # noqa: E402,F401
from app.models.customer import Customer  # noqa: E402
from app.models.delivery import DeliveryEntry, DeliveryType  # noqa: E402
from app.models.tenant import Tenant  # noqa: E402
from app.services.billing.bills import sync_customer_month  # noqa: E402
from app.services.tenancy import TenantScope  # noqa: E402


@pytest.fixture(scope="session")
def engine():
    database_url = os.getenv("TEST_DATABASE_URL")
    if database_url:
        # Use PostgreSQL for tests (recommended)
        engine = create_engine(database_url)
    else:
        engine = create_engine(
            "sqlite+pysqlite://",
            connect_args={
                "check_same_thread": False,
            },
            poolclass=StaticPool,
        )

        @event.listens_for(engine, "connect")
        def _configure_sqlite(dbapi_connection, _connection_record):
            # Let SQLAlchemy issue BEGIN itself so SAVEPOINTs behave.
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(engine, "begin")
        def _do_begin(conn):
            conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)

    return engine


@pytest.fixture()
def db_session(engine):
    connection = engine.connect()
    transaction = connection.begin()
    SessionLocal = sessionmaker(
        bind=connection,
        autoflush=False,
        autocommit=False,
        join_transaction_mode="create_savepoint",
    )
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()


@pytest.fixture()
def tenant(db_session):
    tenant = Tenant(name="Ali Gas Agency")
    db_session.add(tenant)
    db_session.commit()
    db_session.refresh(tenant)
    return tenant


@pytest.fixture()
def other_tenant(db_session):
    tenant = Tenant(name="Karachi Cylinders")
    db_session.add(tenant)
    db_session.commit()
    db_session.refresh(tenant)
    return tenant


@pytest.fixture()
def scope(tenant):
    return TenantScope(tenant_id=tenant.id)


@pytest.fixture()
def make_customer(db_session, tenant):
    """Create customers with dense codes in the default tenant (or another one)."""

    def _make(name: str, owner: Tenant | None = None) -> Customer:
        owner = owner or tenant
        code = (
            db_session.query(Customer).filter(Customer.tenant_id == owner.id).count() + 1
        )
        customer = Customer(tenant_id=owner.id, customer_code=code, name=name)
        db_session.add(customer)
        db_session.commit()
        db_session.refresh(customer)
        return customer

    return _make


@pytest.fixture()
def customer(make_customer):
    return make_customer("Arham")


@pytest.fixture()
def deliver(db_session, tenant):
    """Write a delivered entry straight to the ledger, without auto sync."""

    def _deliver(
        customer: Customer | None,
        when: datetime,
        amount: int,
        quantity: int = 1,
        customer_name: str | None = None,
        delivery_type: DeliveryType = DeliveryType.delivered,
        owner: Tenant | None = None,
    ) -> DeliveryEntry:
        if owner is None:
            owner = tenant if customer is None else None
        entry = DeliveryEntry(
            tenant_id=owner.id if owner else customer.tenant_id,
            customer_id=customer.id if customer else None,
            customer_name=customer_name or customer.name,
            delivery_type=delivery_type,
            delivery_date=when,
            quantity=quantity,
            unit_price=amount // quantity if quantity else 0,
            amount=amount,
        )
        db_session.add(entry)
        db_session.commit()
        return entry

    return _deliver


@pytest.fixture()
def billed(db_session, scope, deliver):
    """Create a bill with the given total for a customer's month."""

    def _billed(customer: Customer, when: datetime, amount: int):
        deliver(customer, when, amount)
        sync_customer_month(db_session, scope, customer, when)
        db_session.commit()
        from app.models.billing import Bill

        return (
            db_session.query(Bill)
            .filter(Bill.customer_id == customer.id)
            .order_by(Bill.period_start.desc())
            .first()
        )

    return _billed
