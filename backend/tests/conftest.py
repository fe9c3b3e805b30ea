"""
Shared test setup: a throwaway SQLite database, fake providers and an API
client wired to them.

Settings are read at import time, so the environment is prepared before any
`ideabrief` module is imported.
"""
import os
import tempfile

_DB_DIR = tempfile.mkdtemp(prefix="ideabrief-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["ENV"] = "dev"
os.environ["RATE_LIMIT_BACKEND"] = "memory"
os.environ.pop("API_AUTH_KEY", None)
os.environ.pop("KEYWORD_ANALYTICS_API_URL", None)
os.environ.pop("KEYWORD_ANALYTICS_API_KEY", None)

import pytest
from fastapi.testclient import TestClient

from ideabrief.core.db import Base, SessionLocal, engine
from ideabrief.models import brief, idea, keyword_cache, research_job, research_trace_event  # noqa: F401
from ideabrief.main import app
from ideabrief.services.connectors import get_keyword_provider, get_research_provider
from ideabrief.services.rate_limit import InMemoryRateLimitStore, RateLimiter, get_rate_limiter

from tests.fixtures.research_fixtures import FakeKeywordProvider, FakeResearchProvider


@pytest.fixture(autouse=True)
def _schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def research_provider():
    return FakeResearchProvider()


@pytest.fixture
def keyword_provider():
    return FakeKeywordProvider()


@pytest.fixture
def rate_limiter():
    return RateLimiter(InMemoryRateLimitStore(), window_seconds=60)


@pytest.fixture
def client(monkeypatch, research_provider, keyword_provider, rate_limiter):
    enqueued = []
    monkeypatch.setattr(
        "ideabrief.api.routes_research.enqueue_research_submission",
        lambda job_id: enqueued.append(job_id),
    )
    app.dependency_overrides[get_research_provider] = lambda: research_provider
    app.dependency_overrides[get_keyword_provider] = lambda: keyword_provider
    app.dependency_overrides[get_rate_limiter] = lambda: rate_limiter
    with TestClient(app) as test_client:
        test_client.enqueued = enqueued
        yield test_client
    app.dependency_overrides.clear()
