# tests/conftest.py
import os
import sys

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

sys.path.append(os.path.abspath("."))

from contacts_api import models, schemas
from contacts_api.auth import create_access_token, get_password_hash
from contacts_api.database import Base, get_db
from contacts_api.notifications import get_mailer
from contacts_api.users import rate_limiter
from main import app


# DB (SQLite in-memory for tests)
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

STRONG_PASSWORD = "Secret123!"


@pytest.fixture(autouse=True)
def prepare_database():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db_session():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


class FakeMailer:
    """Records outgoing mail; set ``fail`` to simulate a transport error."""

    def __init__(self):
        self.sent: list[tuple[str, str, str]] = []
        self.fail = False

    async def send_activation(self, email: str, user_id: str) -> bool:
        self.sent.append(("activation", email, user_id))
        return not self.fail

    async def send_password(self, email: str, password: str) -> bool:
        self.sent.append(("password", email, password))
        return not self.fail


@pytest.fixture()
def mailer():
    return FakeMailer()


# Client fixture: override DB, mail and rate limiting per test
@pytest.fixture()
def client(db_session, mailer):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_mailer] = lambda: mailer
    app.dependency_overrides[rate_limiter] = lambda: None

    c = TestClient(app)
    try:
        yield c
    finally:
        app.dependency_overrides.clear()


def create_user(
    db_session,
    email="user@example.com",
    password=STRONG_PASSWORD,
    name="Test User",
    is_active=True,
    expire_time=None,
):
    user = models.User(
        name=name,
        email=email,
        password=get_password_hash(password),
        is_active=is_active,
        expire_time=expire_time,
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


def auth_headers(user):
    token = create_access_token(schemas.Identity.model_validate(user))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def user(db_session):
    return create_user(db_session)


@pytest.fixture()
def headers(user):
    return auth_headers(user)
