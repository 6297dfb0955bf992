"""
Pytest configuration and shared fixtures for tests
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ussd_ticketing.database import build_engine, init_db
from ussd_ticketing.models import Operator, Bus
from ussd_ticketing.ussd.auth import hash_pin

NOW = datetime(2030, 1, 1, 6, 0)
OPERATOR_PIN = "1234"
OTHER_OPERATOR_PIN = "5678"


@pytest.fixture(name="db_engine")
def db_engine_fixture():
    """Create in-memory SQLite database engine for testing"""
    engine = build_engine(
        "sqlite:///:memory:",
        poolclass=StaticPool,  # Keep single connection for in-memory DB
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture(name="db_session")
def db_session_fixture(db_engine):
    """Create database session for testing"""
    with Session(db_engine) as session:
        yield session
        session.rollback()  # Rollback any uncommitted changes after test


@pytest.fixture(name="file_engine")
def file_engine_fixture(tmp_path):
    """File-backed SQLite engine for tests that need several connections"""
    engine = build_engine(f"sqlite:///{tmp_path / 'ussd_test.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture(name="session_factory")
def session_factory_fixture(file_engine):
    return sessionmaker(bind=file_engine, autoflush=False)


def _add_operator(db: Session, name: str, pin: str) -> Operator:
    operator = Operator(name=name, pin_hash=hash_pin(pin))
    db.add(operator)
    db.commit()
    db.refresh(operator)
    return operator


def _add_bus(db: Session, operator: Operator = None, **overrides) -> Bus:
    values = {
        "route": "Juba - Nimule",
        "operator_id": operator.id if operator else None,
        "operator": operator.name if operator else None,
        "departure_time": NOW + timedelta(days=1),
        "total_seats": 10,
        "available_seats": 10,
        "price": Decimal("15000.00"),
    }
    values.update(overrides)
    bus = Bus(**values)
    db.add(bus)
    db.commit()
    db.refresh(bus)
    return bus


@pytest.fixture
def operator(db_session):
    """Operator with PIN 1234"""
    return _add_operator(db_session, "Nile Express", OPERATOR_PIN)


@pytest.fixture
def bus_factory(db_session):
    """Create buses in the in-memory database"""

    def factory(operator=None, **overrides):
        return _add_bus(db_session, operator, **overrides)

    return factory


@pytest.fixture
def buses(bus_factory, operator):
    """Two upcoming buses; the Yei bus departs first"""
    nimule = bus_factory(operator, route="Juba - Nimule", departure_time=NOW + timedelta(days=1))
    yei = bus_factory(
        operator,
        route="Juba - Yei",
        departure_time=NOW + timedelta(hours=3),
        total_seats=5,
        available_seats=5,
        price=Decimal("12000.00"),
    )
    return [yei, nimule]


@pytest.fixture
def file_seed(session_factory):
    """Seed the file-backed database; returns (operator_id, [bus ids by departure])"""
    with session_factory() as db:
        operator = _add_operator(db, "Nile Express", OPERATOR_PIN)
        late = _add_bus(db, operator, route="Juba - Nimule", departure_time=NOW + timedelta(days=1))
        early = _add_bus(
            db,
            operator,
            route="Juba - Yei",
            departure_time=NOW + timedelta(hours=3),
            total_seats=5,
            available_seats=5,
        )
        return operator.id, [early.id, late.id]
