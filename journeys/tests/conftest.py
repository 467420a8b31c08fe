from __future__ import annotations

import copy

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from journeys.auth import ADMIN_ROLE, USER_ROLE, hash_password
from journeys.models import Base, User

VALID_DOCUMENT = {
    "title": "Car insurance quote",
    "npsScore": 85,
    "customerSentiment": 90,
    "keyInsight": "Customers drop off at the quote step",
    "performanceIndicators": [{"name": "Conversion", "value": 42}],
    "stages": [
        {
            "name": "awareness",
            "description": "Customer discovers the product online",
            "touchpoints": [
                {
                    "title": "Landing page",
                    "type": "Digital",
                    "duration": "5",
                    "comment": None,
                    "compassTags": ["cognitive"],
                    "actions": [
                        {
                            "title": "Reads offer",
                            "description": "Customer reads the headline offer",
                            "imageUrl": None,
                            "type": "customer",
                        },
                    ],
                },
            ],
        },
    ],
}


@pytest.fixture()
def valid_document() -> dict:
    return copy.deepcopy(VALID_DOCUMENT)


@pytest.fixture()
def engine():
    """In-memory SQLite shared by every connection (StaticPool)."""
    eng = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    return eng


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def add_user(session_factory, email: str, password: str, role: str = USER_ROLE) -> int:
    # Cheap hash keeps the suite fast; verify_password reads iterations from the hash.
    session = session_factory()
    try:
        user = User(email=email, password_hash=hash_password(password, iterations=1000), role=role)
        session.add(user)
        session.commit()
        return user.id
    finally:
        session.close()


@pytest.fixture()
def admin_credentials(session_factory) -> tuple[str, str]:
    add_user(session_factory, "admin@journeys.dev", "secret-admin", ADMIN_ROLE)
    return "admin@journeys.dev", "secret-admin"


@pytest.fixture()
def user_credentials(session_factory) -> tuple[str, str]:
    add_user(session_factory, "viewer@journeys.dev", "secret-viewer", USER_ROLE)
    return "viewer@journeys.dev", "secret-viewer"
