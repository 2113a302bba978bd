"""
Tests for request context binding.
"""

import httpx
import pytest
import pytest_asyncio
import structlog

from riskescalation.api.app import create_app


@pytest_asyncio.fixture
async def ctx_client(pipeline):
    app = create_app(pipeline)

    @app.get("/ctx")
    async def ctx():
        return structlog.contextvars.get_contextvars()

    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as c:
        yield c


@pytest.mark.asyncio
async def test_well_formed_upstream_request_id_is_kept(ctx_client):
    response = await ctx_client.get("/ctx", headers={"X-Request-ID": "risk-job.2025-03-01:42"})

    assert response.headers["X-Request-ID"] == "risk-job.2025-03-01:42"
    assert response.json()["request_id"] == "risk-job.2025-03-01:42"


@pytest.mark.asyncio
async def test_malformed_request_id_is_replaced(ctx_client):
    response = await ctx_client.get("/ctx", headers={"X-Request-ID": "bad id\twith spaces"})

    request_id = response.headers["X-Request-ID"]
    assert request_id != "bad id\twith spaces"
    assert len(request_id) == 36


@pytest.mark.asyncio
async def test_trigger_and_school_are_bound(ctx_client):
    response = await ctx_client.get(
        "/ctx",
        params={"school_id": "sch-1"},
        headers={"X-Trigger-Source": "nightly-risk-job"},
    )
    context = response.json()

    assert context["trigger"] == "nightly-risk-job"
    assert context["school_id"] == "sch-1"
    assert context["method"] == "GET"


@pytest.mark.asyncio
async def test_trigger_defaults_to_api(ctx_client):
    context = (await ctx_client.get("/ctx")).json()

    assert context["trigger"] == "api"
    assert "school_id" not in context
