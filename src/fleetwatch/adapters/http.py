"""httpx-backed health probe client."""

import json

import httpx

from fleetwatch.core.errors import ProbeTimeoutError, ProbeTransportError
from fleetwatch.core.ports import ProbeResponse


class HttpxProbeClient:
    """ProbeClientPort implementation over a shared ``httpx.AsyncClient``.

    Non-2xx responses are returned, not raised; only timeouts and transport
    failures become exceptions. A JSON body is decoded, anything else is
    reported as ``None``.
    """

    def __init__(
        self,
        user_agent: str = "fleetwatch",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(follow_redirects=True)
        self._headers = {"User-Agent": user_agent, "Accept": "application/json"}

    async def get(self, url: str, timeout: float) -> ProbeResponse:
        try:
            response = await self._client.get(
                url, headers=self._headers, timeout=timeout
            )
        except httpx.TimeoutException as exc:
            raise ProbeTimeoutError(
                f"timeout of {int(timeout * 1000)}ms exceeded"
            ) from exc
        except httpx.HTTPError as exc:
            raise ProbeTransportError(str(exc) or type(exc).__name__) from exc

        try:
            body = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            body = None
        return ProbeResponse(status_code=response.status_code, body=body)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
