"""
Shared pytest fixtures for the Grievance Desk test suite.

Each test gets a fresh app with an in-memory store and a temporary uploads
directory, plus an in-process httpx AsyncClient bound to it.
"""

import httpx
import pytest
import pytest_asyncio

from grievance_desk.app import create_app
from grievance_desk.store import InMemoryStore

BASE_URL = "http://testserver"

SAMPLE_GRIEVANCE = {
    "title": "Broken AC in Room 204",
    "description": "The air conditioning unit in hostel room 204 has been non-functional for five days.",
    "category": "hostel",
}


@pytest.fixture
def sample_grievance():
    return dict(SAMPLE_GRIEVANCE)


@pytest.fixture
def upload_dir(tmp_path):
    return tmp_path / "uploads"


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def app(store, upload_dir):
    return create_app(store=store, upload_dir=upload_dir)


@pytest_asyncio.fixture
async def client(app):
    """In-process httpx AsyncClient for the app under test."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url=BASE_URL) as c:
        yield c


@pytest_asyncio.fixture
async def grievance(client):
    """A grievance submitted through the API."""
    resp = await client.post("/api/grievances", json=SAMPLE_GRIEVANCE)
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]
