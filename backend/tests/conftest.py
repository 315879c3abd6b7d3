"""Shared fixtures: in-memory SQLite, seeded users and an API client."""

import os
import tempfile

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("GEOCODING_ENABLED", "false")
os.environ.setdefault("REDIS_URL", "")
os.environ.setdefault("UPLOAD_DIR", os.path.join(tempfile.gettempdir(), "incident-hub-test-uploads"))

from datetime import datetime, timezone
from typing import Optional
from unittest.mock import patch

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from incident_hub.core.rbac import user_context
from incident_hub.core.security import hash_password
from incident_hub.models import (
    Base,
    Incident,
    IncidentSeverity,
    IncidentType,
    User,
    UserRole,
)
from incident_hub.services.geocoding import ReverseGeocoder
from incident_hub.services.incident_service import IncidentService
from incident_hub.services.locks import InMemoryLockManager
from incident_hub.services.media_storage import MediaStorage

TEST_PASSWORD = "correct-horse"


def sqlite_engine():
    return create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )


# =============================================================================
# Database fixtures
# =============================================================================

@pytest_asyncio.fixture
async def db():
    """Session on a fresh in-memory database."""
    engine = sqlite_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with maker() as session:
        yield session

    await engine.dispose()


async def make_user(
    db: AsyncSession,
    email: str,
    role: UserRole = UserRole.USER,
    name: Optional[str] = None,
) -> User:
    user = User(
        email=email,
        name=name or email.split("@")[0],
        password_hash=hash_password(TEST_PASSWORD),
        role=role,
        redemptions=[],
    )
    db.add(user)
    await db.flush()
    return user


async def make_incident(
    db: AsyncSession,
    owner: User,
    latitude: float = 10.0,
    longitude: float = 76.0,
    incident_type: IncidentType = IncidentType.FIRE,
    severity: IncidentSeverity = IncidentSeverity.MEDIUM,
    created_at: Optional[datetime] = None,
    duplicate_of: Optional[Incident] = None,
) -> Incident:
    created_at = created_at or datetime.now(timezone.utc)
    incident = Incident(
        title="Smoke from building",
        description="Thick smoke from the second floor",
        type=incident_type,
        severity=severity,
        latitude=latitude,
        longitude=longitude,
        user_id=owner.id,
        duplicate_of_id=duplicate_of.id if duplicate_of else None,
        created_at=created_at,
        updated_at=created_at,
        upvotes=[],
        notes=[],
    )
    db.add(incident)
    await db.flush()
    return incident


@pytest_asyncio.fixture
async def citizen(db):
    return await make_user(db, "citizen@example.com")


@pytest_asyncio.fixture
async def neighbour(db):
    return await make_user(db, "neighbour@example.com")


@pytest_asyncio.fixture
async def admin(db):
    return await make_user(db, "responder@example.com", role=UserRole.ADMIN)


def context_for(user: User):
    return user_context(str(user.id), [user.role], request_id="test", client_ip="127.0.0.1")


@pytest.fixture
def service(tmp_path):
    """Incident service wired to temp storage, local locks and no geocoding."""
    return IncidentService(
        storage=MediaStorage(
            root=str(tmp_path / "media"),
            url_prefix="/uploads",
            max_file_bytes=1024,
            max_files=5,
        ),
        geocoder=ReverseGeocoder(enabled=False),
        lock_manager=InMemoryLockManager(),
        upvote_threshold=1,
    )


# =============================================================================
# API fixtures
# =============================================================================

@pytest.fixture
def client(tmp_path):
    """TestClient whose requests share one in-memory database."""
    from incident_hub.db.session import get_db
    from incident_hub.main import app
    from incident_hub.services.incident_service import incident_service

    engine = sqlite_engine()
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    state = {"tables": False}

    async def override_get_db():
        if not state["tables"]:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            state["tables"] = True
        async with maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    storage = MediaStorage(
        root=str(tmp_path / "uploads"),
        url_prefix="/uploads",
        max_file_bytes=1024,
        max_files=5,
    )

    app.dependency_overrides[get_db] = override_get_db
    with patch.object(incident_service, "storage", storage), \
            patch.object(incident_service, "_lock_manager", InMemoryLockManager()):
        with TestClient(app) as test_client:
            yield test_client
    app.dependency_overrides.clear()


def register(client, email: str, name: str = "Tester") -> dict:
    response = client.post(
        "/api/v1/auth/register",
        json={"name": name, "email": email, "password": TEST_PASSWORD},
    )
    assert response.status_code == 201, response.text
    return response.json()


def auth_headers(token_response: dict) -> dict:
    return {"Authorization": f"Bearer {token_response['access_token']}"}


def login(client, email: str) -> dict:
    response = client.post(
        "/api/v1/auth/login",
        json={"email": email, "password": TEST_PASSWORD},
    )
    assert response.status_code == 200, response.text
    return response.json()


def make_admin(client, email: str = "responder@example.com") -> dict:
    """Create the superadmin, promote a fresh account and log it in."""
    client.post(
        "/api/v1/auth/setup-superadmin",
        json={"name": "Root", "email": "root@example.com", "password": TEST_PASSWORD},
    )
    root = login(client, "root@example.com")
    register(client, email, name="Responder")
    response = client.post(
        "/api/v1/auth/admins", json={"email": email}, headers=auth_headers(root)
    )
    assert response.status_code == 200, response.text
    return login(client, email)


def report(client, headers: dict, **overrides) -> dict:
    form = {
        "title": "Car crash",
        "description": "Two cars collided at the junction",
        "type": "accident",
        "severity": "High",
        "latitude": "10.0",
        "longitude": "76.0",
    }
    form.update({k: str(v) for k, v in overrides.items()})
    response = client.post("/api/v1/incidents", data=form, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()
