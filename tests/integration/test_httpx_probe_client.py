"""Tests for the httpx-backed probe client."""

import httpx
import pytest

from fleetwatch.adapters.http import HttpxProbeClient
from fleetwatch.core.errors import ProbeTimeoutError, ProbeTransportError

pytestmark = [pytest.mark.integration, pytest.mark.tier(2)]


def client_for(handler) -> HttpxProbeClient:
    transport = httpx.MockTransport(handler)
    return HttpxProbeClient(
        user_agent="fleetwatch/1.0.0", client=httpx.AsyncClient(transport=transport)
    )


async def test_returns_status_and_json_body():
    """A JSON body is decoded and the request carries the user agent."""
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"status": "healthy"})

    response = await client_for(handler).get("http://api/health", 5.0)

    assert response.status_code == 200
    assert response.body == {"status": "healthy"}
    assert seen[0].headers["user-agent"] == "fleetwatch/1.0.0"


async def test_non_json_body_is_none():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="OK")

    response = await client_for(handler).get("http://api/health", 5.0)

    assert response.body is None


async def test_non_2xx_is_returned_not_raised():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, json={"status": "unhealthy"})

    response = await client_for(handler).get("http://api/health", 5.0)

    assert response.status_code == 503


async def test_timeout_maps_to_probe_timeout():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(ProbeTimeoutError, match="timeout of 2500ms exceeded"):
        await client_for(handler).get("http://api/health", 2.5)


async def test_connection_error_maps_to_transport_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ProbeTransportError, match="connection refused"):
        await client_for(handler).get("http://api/health", 5.0)


async def test_aclose_leaves_injected_client_open():
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
    probe = HttpxProbeClient(client=client)

    await probe.aclose()

    assert not client.is_closed
    await client.aclose()
