import json
import os
import tempfile
import threading
from collections.abc import Generator

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["UPLOADS_DIR"] = tempfile.mkdtemp(prefix="menuqr-uploads-")
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["STRIPE_SECRET_KEY"] = ""
os.environ["STRIPE_WEBHOOK_SECRET"] = ""
os.environ["PUBLIC_BASE_URL"] = ""
os.environ["FREE_PLAN_PRODUCT_LIMIT"] = "5"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import StaticPool
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, select

from menuqr.billing import BillingProvider, SubscriptionInfo, get_billing
from menuqr.db import build_engine, get_session
from menuqr.errors import ValidationFailed
from menuqr.main import app
from menuqr.models import Plan, Restaurant, User


class FakeBilling(BillingProvider):
    """In-memory stand-in for Stripe; statuses are flipped by the tests."""

    def __init__(self):
        self.customers: list[str] = []
        self.statuses: dict[str, str] = {}
        self.fail_with: Exception | None = None
        # Idempotency key -> id returned for it, like Stripe replays
        self.replays: dict[str, str] = {}
        self.subscription_keys: list[str] = []
        self._lock = threading.Lock()

    @property
    def subscriptions_created(self) -> int:
        return len(self.statuses)

    def create_customer(self, email: str, idempotency_key: str) -> str:
        if self.fail_with:
            raise self.fail_with
        with self._lock:
            if idempotency_key not in self.replays:
                self.customers.append(email)
                self.replays[idempotency_key] = f"cus_{len(self.customers)}"
            return self.replays[idempotency_key]

    def create_subscription(self, customer_id: str, idempotency_key: str) -> SubscriptionInfo:
        if self.fail_with:
            raise self.fail_with
        with self._lock:
            self.subscription_keys.append(idempotency_key)
            if idempotency_key not in self.replays:
                subscription_id = f"sub_{len(self.statuses) + 1}"
                self.statuses[subscription_id] = "incomplete"
                self.replays[idempotency_key] = subscription_id
            subscription_id = self.replays[idempotency_key]
        return self.retrieve_subscription(subscription_id)

    def retrieve_subscription(self, subscription_id: str) -> SubscriptionInfo:
        if self.fail_with:
            raise self.fail_with
        return SubscriptionInfo(
            id=subscription_id,
            status=self.statuses[subscription_id],
            client_secret=f"pi_{subscription_id}_secret",
        )

    def subscription_id_from_event(self, payload: bytes, signature: str | None) -> str | None:
        if signature != "valid":
            raise ValidationFailed("Invalid webhook signature")
        return json.loads(payload).get("subscription")


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    test_engine = build_engine("sqlite://", poolclass=StaticPool)
    SQLModel.metadata.create_all(test_engine)
    yield test_engine
    SQLModel.metadata.drop_all(test_engine)
    test_engine.dispose()


@pytest.fixture
def session(engine: Engine) -> Generator[Session, None, None]:
    with Session(engine) as db_session:
        yield db_session


@pytest.fixture
def billing() -> FakeBilling:
    return FakeBilling()


@pytest.fixture
def client(engine: Engine, billing: FakeBilling) -> Generator[TestClient, None, None]:
    def override_get_session():
        with Session(engine) as db_session:
            yield db_session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_billing] = lambda: billing
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def register_owner(client: TestClient):
    """
    Register an account and return its Authorization headers.

    The session cookie is dropped so several owners can act in one test.
    """
    def _register(email: str, restaurant_name: str = "Cantina", password: str = "secret123") -> dict:
        response = client.post(
            "/register",
            json={"email": email, "password": password, "restaurant_name": restaurant_name},
        )
        assert response.status_code == 200, response.text
        client.cookies.clear()
        return {"Authorization": f"Bearer {response.json()['access_token']}"}

    return _register


@pytest.fixture
def owner(register_owner) -> dict:
    return register_owner("owner@example.com", "Cantina da Praça")


def make_user(session: Session, email: str, name: str | None = None, plan: Plan = Plan.free) -> User:
    """Insert a user, and a restaurant when `name` is given, bypassing the API."""
    user = User(email=email, hashed_password="not-a-hash", plan=plan)
    session.add(user)
    session.flush()
    if name is not None:
        session.add(Restaurant(user_id=user.id, name=name, slug=name.lower().replace(" ", "-")))
    session.commit()
    session.refresh(user)
    return user


def set_plan(engine: Engine, email: str, plan: Plan) -> None:
    with Session(engine) as db_session:
        user = db_session.exec(select(User).where(User.email == email)).one()
        user.plan = plan
        db_session.add(user)
        db_session.commit()
