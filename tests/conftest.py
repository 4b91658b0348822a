import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("AUTH_JWT_SECRET", "test-secret")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test")
os.environ.setdefault("ENVIRONMENT", "test")

import json
import uuid
from datetime import datetime, time, timedelta, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from cleanouts.api.deps import get_availability_cache, get_clock, get_payment_gateway
from cleanouts.core.config import settings
from cleanouts.core.exceptions import UpstreamError, ValidationError
from cleanouts.db.base import Base
from cleanouts.db.session import get_db
from cleanouts.main import app
from cleanouts.models.booking import Booking
from cleanouts.models.service import Service
from cleanouts.models.user import User
from cleanouts.services.availability_cache import AvailabilityCache
from cleanouts.services.payments import IntentInfo, PaymentGateway
from cleanouts.utils.timeslots import add_hours

# Monday, well inside the booking window
NOW = datetime(2030, 1, 14, 7, 0)
TODAY = NOW.date()
TOMORROW = TODAY + timedelta(days=1)


class FakeClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class FakeGateway(PaymentGateway):
    """In-memory stand-in for Stripe; events are accepted when signed 'valid'."""

    def __init__(self):
        self.intents = {}
        self.created = []
        self.fail_retrieve = False

    def create_intent(self, amount, currency, metadata, description=None):
        intent_id = f"pi_{len(self.created) + 1:04d}"
        intent = IntentInfo(
            id=intent_id,
            client_secret=f"{intent_id}_secret",
            status="requires_payment_method",
            amount=amount,
            currency=currency,
        )
        self.intents[intent_id] = intent
        self.created.append((intent_id, amount, currency, metadata))
        return intent

    def retrieve_intent(self, intent_id):
        if self.fail_retrieve or intent_id not in self.intents:
            raise UpstreamError("Failed to retrieve payment intent")
        return self.intents[intent_id]

    def set_status(self, intent_id, status):
        old = self.intents[intent_id]
        self.intents[intent_id] = IntentInfo(old.id, old.client_secret, status, old.amount, old.currency)

    def construct_event(self, payload, signature):
        if signature != "valid":
            raise ValidationError("Invalid webhook signature", code="INVALID_SIGNATURE")
        return json.loads(payload)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def cache():
    return AvailabilityCache(ttl_seconds=300, sweep_interval_seconds=60)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def client(db, cache, clock, gateway):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_availability_cache] = lambda: cache
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    # No context manager: skip the lifespan so the real database is never touched
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


def make_token(user_id, email="user@example.com", role=None, name="Test User"):
    claims = {
        "sub": str(user_id),
        "email": email,
        "aud": settings.AUTH_JWT_AUDIENCE,
        "exp": datetime.now(timezone.utc) + timedelta(hours=1),
        "user_metadata": {"full_name": name},
    }
    if role:
        claims["app_metadata"] = {"role": role}
    return jwt.encode(claims, settings.AUTH_JWT_SECRET, algorithm=settings.AUTH_JWT_ALGORITHM)


@pytest.fixture
def user_id():
    return uuid.uuid4()


@pytest.fixture
def auth_headers(user_id):
    return {"Authorization": f"Bearer {make_token(user_id)}"}


@pytest.fixture
def admin_headers():
    token = make_token(uuid.uuid4(), email="admin@example.com", role="admin", name="Admin")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def customer(db, user_id):
    user = User(id=user_id, email="user@example.com", full_name="Test User", role="user")
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def admin(db):
    user = User(id=uuid.uuid4(), email="boss@example.com", full_name="Boss", role="admin")
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def service(db):
    svc = Service(
        name="Garage Clear-Out",
        description="Full garage clear-out with haul away",
        base_price=Decimal("50.00"),
        price_per_hour=Decimal("40.00"),
        is_active=True,
    )
    db.add(svc)
    db.commit()
    db.refresh(svc)
    return svc


@pytest.fixture
def other_service(db):
    svc = Service(
        name="Attic Clean",
        description="Attic sweep and junk removal",
        base_price=Decimal("30.00"),
        price_per_hour=Decimal("25.00"),
        is_active=True,
    )
    db.add(svc)
    db.commit()
    db.refresh(svc)
    return svc


def customer_info(**overrides):
    info = {
        "full_name": "Jane Doe",
        "email": "jane@example.com",
        "phone": "+1 555 123 4567",
        "address": "12 Elm Street, Springfield",
    }
    info.update(overrides)
    return info


def make_booking(db, service, user, booking_date=TOMORROW, start=time(10, 0), duration=2, status="pending", **extra):
    """Insert a booking row directly, bypassing the lifecycle checks."""
    booking = Booking(
        booking_number=f"CLN-{uuid.uuid4().hex[:8].upper()}",
        user_id=user.id,
        service_id=service.id,
        booking_date=booking_date,
        start_time=start,
        end_time=add_hours(start, duration),
        duration=duration,
        total_price=Decimal(service.base_price) + Decimal(service.price_per_hour) * duration,
        status=status,
        customer_info=customer_info(),
        **extra,
    )
    db.add(booking)
    db.commit()
    db.refresh(booking)
    return booking


def booking_payload(service_id, booking_date=TOMORROW, start_time="10:00", duration=2, **extra):
    payload = {
        "service_id": str(service_id),
        "booking_date": booking_date.isoformat(),
        "start_time": start_time,
        "duration": duration,
        "customer_info": customer_info(),
    }
    payload.update(extra)
    return payload
