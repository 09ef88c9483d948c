"""
Pytest Configuration and Shared Fixtures

Provides an in-memory database, a signed-in user, an API client with
auth and jobs stubbed out, and canned DataForSEO payloads.
"""

import pytest
from typing import Dict, Any
from unittest.mock import MagicMock, AsyncMock, patch

import httpx
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from seo_dashboard.auth.dependencies import get_current_user
from seo_dashboard.auth.models import User, UserRole
from seo_dashboard.database import session as session_module
from seo_dashboard.database.models import Base, Domain
from seo_dashboard.database.session import get_db
from seo_dashboard.dataforseo import rate_limiter
from seo_dashboard.dataforseo.client import DataForSEOClient
from seo_dashboard.dataforseo.rate_limiter import LIMITER_CONFIGS, LimiterConfig, RetryConfig


# ============================================================================
# Database
# ============================================================================

@pytest.fixture
def engine():
    """Fresh in-memory SQLite database shared across connections."""
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
def session_factory(engine, monkeypatch):
    """Point the application's session globals at the test engine."""
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    monkeypatch.setattr(session_module, "_engine", engine)
    monkeypatch.setattr(session_module, "_SessionLocal", factory)
    return factory


@pytest.fixture
def db(session_factory):
    """Database session for arranging and asserting test data."""
    session = session_factory()
    yield session
    session.close()


# ============================================================================
# Users and Domains
# ============================================================================

@pytest.fixture
def user(db) -> User:
    user = User(email="owner@test.com", name="Owner", role=UserRole.USER, is_active=True)
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def other_user(db) -> User:
    user = User(email="other@test.com", name="Other", role=UserRole.USER, is_active=True)
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def domain(db, user) -> Domain:
    domain = Domain(
        user_id=user.id,
        name="Example Plumbing",
        domain="example.com",
        business_name="Example Plumbing",
        city="Austin",
        state="TX",
    )
    db.add(domain)
    db.commit()
    return domain


# ============================================================================
# API Client
# ============================================================================

@pytest.fixture
def mock_bus_run():
    """Background job dispatch, replaced so routes never run real jobs."""
    from seo_dashboard.jobs import bus

    with patch.object(bus, "run", new=AsyncMock(return_value=[])) as mocked:
        yield mocked


@pytest.fixture
def client(session_factory, user, mock_bus_run):
    """TestClient signed in as `user`."""
    from api.app import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = lambda: user
    yield TestClient(app)
    app.dependency_overrides.clear()


# ============================================================================
# DataForSEO
# ============================================================================

@pytest.fixture
def fast_general_limiter(monkeypatch):
    """General limiter without spacing or backoff delays."""
    monkeypatch.setitem(LIMITER_CONFIGS, "general", LimiterConfig(
        name="general",
        max_concurrent=5,
        min_time_ms=0,
        reservoir=100,
        retry=RetryConfig(max_retries=2, initial_delay=0.0),
    ))
    rate_limiter.reset_limiters()
    yield
    rate_limiter.reset_limiters()


@pytest.fixture
def transport_client():
    """Factory for a real DataForSEOClient answering from an httpx handler."""
    def _create(handler) -> DataForSEOClient:
        return DataForSEOClient("login", "password", transport=httpx.MockTransport(handler))
    return _create


@pytest.fixture
def mock_dataforseo() -> MagicMock:
    """DataForSEO facade with async module methods and an async close()."""
    dfs = MagicMock()
    dfs.close = AsyncMock()
    dfs.__aenter__ = AsyncMock(return_value=dfs)
    dfs.__aexit__ = AsyncMock(return_value=False)
    return dfs


@pytest.fixture
def maps_items() -> list:
    """Google Maps SERP items for a plumbing keyword."""
    return [
        {
            "type": "maps_search",
            "rank_absolute": 1,
            "title": "Rival Plumbing",
            "cid": "111",
            "place_id": "place-rival",
            "domain": "rivalplumbing.com",
            "rating": {"value": 4.8, "votes_count": 320},
        },
        {
            "type": "maps_search",
            "rank_absolute": 2,
            "title": "Example Plumbing",
            "cid": "222",
            "place_id": "place-example",
            "domain": "example.com",
            "rating": {"value": 4.5, "votes_count": 120},
        },
        {
            "type": "maps_search",
            "rank_absolute": 3,
            "title": "Budget Pipes",
            "cid": "333",
            "place_id": "place-budget",
            "rating": {"value": 3.9, "votes_count": 40},
        },
    ]


@pytest.fixture
def organic_items() -> list:
    """Organic SERP items with a local pack and a featured snippet."""
    return [
        {"type": "local_pack", "rank_group": 1, "title": "Example Plumbing", "domain": "example.com",
         "rating": {"value": 4.5, "votes_count": 120}, "cid": "222"},
        {"type": "featured_snippet", "rank_group": 1, "domain": "rivalplumbing.com"},
        {"type": "organic", "rank_group": 1, "rank_absolute": 2, "domain": "rivalplumbing.com",
         "url": "https://rivalplumbing.com/"},
        {"type": "organic", "rank_group": 2, "rank_absolute": 3, "domain": "www.example.com",
         "url": "https://www.example.com/services"},
        {"type": "organic", "rank_group": 3, "rank_absolute": 4, "domain": "yelp.com",
         "url": "https://yelp.com/austin-plumbers"},
    ]


def _make_response(result: Dict[str, Any], cost: float = 0.002) -> Dict[str, Any]:
    """Successful DataForSEO envelope with a single task result."""
    return {
        "status_code": 20000,
        "status_message": "Ok.",
        "cost": cost,
        "tasks_error": 0,
        "tasks": [
            {
                "status_code": 20000,
                "status_message": "Ok.",
                "cost": cost,
                "result": [result],
            }
        ],
    }


@pytest.fixture
def api_response() -> Dict[str, Any]:
    """Minimal successful DataForSEO envelope."""
    return _make_response({"items": [{"keyword": "plumber"}]})


@pytest.fixture
def make_response():
    """Factory for successful DataForSEO envelopes."""
    return _make_response
