import os

# Keep the application's default engine off the working directory
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from parcel_service.database import Base, get_db
from parcel_service.exceptions import ProviderError
from parcel_service.main import app as fastapi_app
from parcel_service.models import Parcel, Payment
from parcel_service.stores import ParcelStore
from parcel_service.stripe_service import ProviderSession, get_provider


class FakeProvider:
    """In-memory stand-in for the Stripe checkout client."""

    def __init__(self):
        self.sessions = {}
        self.created = []
        self.retrieved = []

    def add_session(self, session_id, parcel_id=None, transaction_id="pi_test_1",
                    payment_status="paid", amount_total=2000, currency="usd",
                    customer_email="sender@example.com", metadata=None):
        if metadata is None:
            metadata = {"parcelId": parcel_id, "parcelName": "Books"} if parcel_id else {}
        session = ProviderSession(
            session_id=session_id,
            transaction_id=transaction_id,
            payment_status=payment_status,
            amount_total=amount_total,
            currency=currency,
            customer_email=customer_email,
            metadata=metadata,
        )
        self.sessions[session_id] = session
        return session

    def create_session(self, line_items, customer_email, metadata, success_url, cancel_url):
        self.created.append({
            "line_items": line_items,
            "customer_email": customer_email,
            "metadata": metadata,
            "success_url": success_url,
            "cancel_url": cancel_url,
        })
        return f"https://checkout.stripe.test/c/cs_test_{len(self.created)}"

    def retrieve_session(self, session_id):
        self.retrieved.append(session_id)
        try:
            return self.sessions[session_id]
        except KeyError:
            raise ProviderError(f"No such checkout session: {session_id}")


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def parcel_id(session_factory):
    session = session_factory()
    parcel = ParcelStore(session).create("Books", "sender@example.com", 20)
    parcel_id = parcel.id
    session.close()
    return parcel_id


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    fastapi_app.dependency_overrides[get_db] = override_get_db

    with TestClient(fastapi_app) as c:
        yield c

    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def fake_provider_client(client, provider):
    fastapi_app.dependency_overrides[get_provider] = lambda: provider
    return client


@pytest.fixture
def load_parcel(session_factory):
    def load(parcel_id):
        session = session_factory()
        try:
            return session.get(Parcel, parcel_id)
        finally:
            session.close()
    return load


@pytest.fixture
def load_payments(session_factory):
    def load():
        session = session_factory()
        try:
            return session.query(Payment).all()
        finally:
            session.close()
    return load
