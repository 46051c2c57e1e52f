import hashlib
import hmac
import json
import os
import time
from dataclasses import replace
from datetime import datetime, timedelta, UTC
from decimal import Decimal

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-reservapp")

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from reservapp.config import settings
from reservapp.core.exceptions import PaymentGatewayException
from reservapp.core.security import hash_password
from reservapp.database import get_db
from reservapp.dependencies import get_payment_gateway
# Import all model classes to ensure they're registered with SQLAlchemy
from reservapp.models import (
    Base,
    Payment,
    PaymentStatus,
    Reservation,
    ReservationStatus,
    Service,
    User,
    UserRole,
    Venue,
)
from reservapp.services.gateway import GatewayIntent, GatewayRefund, StripeGateway
# Import FastAPI app AFTER model imports
from reservapp.main import app

WEBHOOK_SECRET = "whsec_test_secret"
TEST_PASSWORD = "correct-horse-battery"

# Test database (SQLite in-memory for speed)
# Use StaticPool to ensure all connections share the same in-memory database
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"
engine = create_engine(
    SQLALCHEMY_TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeGateway:
    """
    In-process payment gateway.

    Intents and refunds live in memory. Webhook verification goes through a
    real StripeGateway, so tests sign payloads with ``sign_webhook``.
    """

    def __init__(self):
        self.intents: dict[str, GatewayIntent] = {}
        self.refunds: dict[str, list[GatewayRefund]] = {}
        self.confirm_status = "succeeded"
        self.confirm_error: str | None = None
        self.unavailable = False
        self._verifier = StripeGateway(api_key="sk_test_fake", webhook_secret=WEBHOOK_SECRET)

    def register_intent(self, intent_id: str, amount: Decimal, currency: str = "usd") -> GatewayIntent:
        intent = GatewayIntent(
            id=intent_id,
            status="requires_payment_method",
            amount=Decimal(amount),
            currency=currency,
            client_secret=f"{intent_id}_secret_test",
        )
        self.intents[intent_id] = intent
        return intent

    def create_payment_intent(
        self, amount, currency, metadata=None, description=None, customer_id=None
    ) -> GatewayIntent:
        self._check_available()
        intent = self.register_intent(f"pi_test_{len(self.intents) + 1}", amount, currency)
        intent = replace(intent, metadata=dict(metadata or {}))
        self.intents[intent.id] = intent
        return intent

    def confirm_payment_intent(self, payment_intent_id, payment_method_id=None) -> GatewayIntent:
        intent = self.retrieve_payment_intent(payment_intent_id)
        intent = replace(
            intent,
            status=self.confirm_status,
            requires_action=self.confirm_status == "requires_action",
            last_error=self.confirm_error,
        )
        self.intents[intent.id] = intent
        return intent

    def retrieve_payment_intent(self, payment_intent_id) -> GatewayIntent:
        self._check_available()
        if payment_intent_id not in self.intents:
            raise PaymentGatewayException("Payment provider error")
        return self.intents[payment_intent_id]

    def create_refund(self, payment_intent_id, amount=None, reason=None) -> GatewayRefund:
        intent = self.retrieve_payment_intent(payment_intent_id)
        issued = self.refunds.setdefault(payment_intent_id, [])
        if amount is None:
            amount = intent.amount - sum((r.amount for r in issued), Decimal("0"))
        refund = GatewayRefund(
            id=f"re_test_{sum(len(r) for r in self.refunds.values()) + 1}",
            amount=Decimal(amount),
            currency=intent.currency,
            status="succeeded",
            reason=reason,
            created=datetime.now(UTC),
        )
        issued.append(refund)
        return refund

    def construct_webhook_event(self, payload, signature):
        return self._verifier.construct_webhook_event(payload, signature)

    def _check_available(self):
        if self.unavailable:
            raise PaymentGatewayException("Payment provider error")


def sign_webhook(event: dict, secret: str = WEBHOOK_SECRET, timestamp: int | None = None):
    """Serialize an event and build a matching Stripe-Signature header"""
    payload = json.dumps(event)
    timestamp = timestamp or int(time.time())
    signature = hmac.new(
        secret.encode("utf-8"), f"{timestamp}.{payload}".encode("utf-8"), hashlib.sha256
    ).hexdigest()
    return payload, f"t={timestamp},v1={signature}"


def intent_event(event_id: str, event_type: str, intent_id: str, status: str, amount: int = 20000):
    """Webhook event dict for a payment intent (amount in cents)"""
    intent = {
        "id": intent_id,
        "object": "payment_intent",
        "amount": amount,
        "currency": "usd",
        "status": status,
        "metadata": {},
    }
    if event_type == "payment_intent.payment_failed":
        intent["last_payment_error"] = {"message": "Your card was declined."}
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "data": {"object": intent},
    }


def charge_refunded_event(
    event_id: str, intent_id: str, amount: int = 20000, amount_refunded: int = 20000
):
    return {
        "id": event_id,
        "object": "event",
        "type": "charge.refunded",
        "data": {
            "object": {
                "id": f"ch_{event_id}",
                "object": "charge",
                "payment_intent": intent_id,
                "amount": amount,
                "amount_refunded": amount_refunded,
                "currency": "usd",
            }
        },
    }


def create_test_token(
    user_id: str = "test-user-123",
    email: str = "test@example.com",
    role: str = "USER",
    expired: bool = False,
) -> str:
    """
    Generate valid JWT token for testing.

    Args:
        user_id: User ID to embed in 'sub' claim
        email: E-mail claim
        role: Role claim
        expired: If True, create expired token

    Returns:
        Encoded JWT token
    """
    if expired:
        exp = datetime.now(UTC) - timedelta(minutes=5)
    else:
        exp = datetime.now(UTC) + timedelta(minutes=15)

    payload = {"sub": user_id, "email": email, "role": role, "exp": exp, "iat": datetime.now(UTC)}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm="HS256")


def headers_for(user: User) -> dict:
    token = create_test_token(user_id=user.id, email=user.email, role=user.role.value)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope="function")
def db_session():
    """Create fresh database for each test"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest.fixture(scope="function")
def client(db_session, fake_gateway):
    """FastAPI test client with test database and fake gateway"""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: fake_gateway
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db_session):
    """Factory for persisted users"""
    password_hash = hash_password(TEST_PASSWORD)

    def _make_user(email: str, role: UserRole = UserRole.USER, is_active: bool = True) -> User:
        user = User(email=email, password_hash=password_hash, role=role, is_active=is_active)
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def guest(make_user):
    return make_user("guest@example.com")


@pytest.fixture
def other_guest(make_user):
    return make_user("other@example.com")


@pytest.fixture
def employee(make_user):
    return make_user("employee@example.com", UserRole.EMPLOYEE)


@pytest.fixture
def manager(make_user):
    return make_user("manager@example.com", UserRole.MANAGER)


@pytest.fixture
def admin(make_user):
    return make_user("admin@example.com", UserRole.ADMIN)


@pytest.fixture
def super_admin(make_user):
    return make_user("root@example.com", UserRole.SUPER_ADMIN)


@pytest.fixture
def guest_headers(guest):
    return headers_for(guest)


@pytest.fixture
def admin_headers(admin):
    return headers_for(admin)


@pytest.fixture
def room(db_session):
    """Per-night service: 100.00 a night, room for 4 guests"""
    venue = Venue(name="Harbor Hotel", address="1 Quay Street")
    room = Service(venue=venue, name="Double Room", price=Decimal("100.00"), capacity=4)
    db_session.add_all([venue, room])
    db_session.commit()
    db_session.refresh(room)
    return room


@pytest.fixture
def make_reservation(db_session, room):
    def _make_reservation(
        user: User,
        status: ReservationStatus = ReservationStatus.PENDING,
        total_amount: Decimal = Decimal("200.00"),
        guest_count: int = 2,
    ) -> Reservation:
        check_in = datetime.now(UTC) + timedelta(days=7)
        reservation = Reservation(
            user_id=user.id,
            service_id=room.id,
            check_in_date=check_in,
            check_out_date=check_in + timedelta(days=2),
            guest_count=guest_count,
            total_amount=total_amount,
            status=status,
        )
        db_session.add(reservation)
        db_session.commit()
        db_session.refresh(reservation)
        return reservation

    return _make_reservation


@pytest.fixture
def reservation(make_reservation, guest):
    return make_reservation(guest)


@pytest.fixture
def make_payment(db_session, fake_gateway):
    """Factory for payments linked to a registered fake gateway intent"""

    def _make_payment(
        reservation: Reservation,
        amount: Decimal | None = None,
        status: PaymentStatus = PaymentStatus.PENDING,
        intent_id: str | None = None,
    ) -> Payment:
        amount = Decimal(amount if amount is not None else reservation.total_amount)
        intent_id = intent_id or f"pi_seed_{len(fake_gateway.intents) + 1}"
        fake_gateway.register_intent(intent_id, amount)
        payment = Payment(
            reservation_id=reservation.id,
            user_id=reservation.user_id,
            amount=amount,
            currency="usd",
            status=status,
            gateway_payment_id=intent_id,
            payment_metadata={},
            paid_at=datetime.now(UTC) if status == PaymentStatus.COMPLETED else None,
        )
        db_session.add(payment)
        db_session.commit()
        db_session.refresh(payment)
        return payment

    return _make_payment


@pytest.fixture
def payment(make_payment, reservation):
    return make_payment(reservation)
