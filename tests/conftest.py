"""
Shared fixtures: in-memory SQLite database, data factories, API client.

Environment is set before the application is imported so settings pick it up.
"""

import os
import sys
from datetime import date
from decimal import Decimal

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SYNC_WORKER_ENABLED"] = "false"
os.environ["REMOTE_AVAILABILITY_URL"] = ""
os.environ.setdefault("SECRET_KEY", "test-secret-key-that-is-long-enough-for-hs256")

from fleet_sync.database import Base, SessionLocal, engine, get_db  # noqa: E402
from fleet_sync import models  # noqa: E402,F401
from fleet_sync.models import Vehicle, Booking, PricingRule  # noqa: E402
from fleet_sync.utils.rate_limiter import limiter  # noqa: E402

limiter.enabled = False


@pytest.fixture
def db_session():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def make_vehicle(db_session):
    counter = {"n": 0}

    def _make(vehicle_id=None, make="Toyota", model="Corolla", year=2022):
        counter["n"] += 1
        vehicle = Vehicle(
            id=vehicle_id or f"vehicle-{counter['n']}",
            make=make,
            model=model,
            year=year,
        )
        db_session.add(vehicle)
        db_session.commit()
        return vehicle

    return _make


@pytest.fixture
def make_booking(db_session):
    counter = {"n": 0}

    def _make(vehicle, start, end, total="0", status="confirmed", customer_id="customer-1", booking_id=None):
        counter["n"] += 1
        booking = Booking(
            id=booking_id or f"booking-{counter['n']}",
            vehicle_id=vehicle.id,
            customer_id=customer_id,
            start_date=start,
            end_date=end,
            total_amount=Decimal(str(total)),
            status=status,
        )
        db_session.add(booking)
        db_session.commit()
        return booking

    return _make


@pytest.fixture
def make_rule(db_session):
    counter = {"n": 0}

    def _make(vehicle, start, end, daily_rate, priority=0, rule_id=None):
        counter["n"] += 1
        rule = PricingRule(
            id=rule_id or f"rule-{counter['n']}",
            vehicle_id=vehicle.id,
            start_date=start,
            end_date=end,
            daily_rate=Decimal(str(daily_rate)),
            priority=priority,
        )
        db_session.add(rule)
        db_session.commit()
        return rule

    return _make


@pytest.fixture
def jan():
    """Day of January 2030"""
    return lambda day: date(2030, 1, day)


@pytest.fixture
def client(db_session):
    from fastapi.testclient import TestClient
    from fleet_sync.main import app

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    from fleet_sync.utils.security import create_access_token

    token = create_access_token({"sub": "manager-1", "role": "fleet_manager"})
    return {"Authorization": f"Bearer {token}"}
