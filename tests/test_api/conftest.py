"""Fixtures for API tests."""

import httpx
import pytest

from clinic_flow.api.app import create_app


@pytest.fixture
def app(workflow):
    """Application wired to the test workflow engine; the lifespan is not run."""
    return create_app(engine=workflow)


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

