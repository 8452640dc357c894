"""HTTP relay gateway — forwards outbound operations over httpx.

Learn: The relay is a small provider-specific service (Twilio, Telnyx,
a WhatsApp Web bridge, ...) that accepts normalized JSON and turns it into
provider API calls. It also posts normalized inbound events back to
/api/v1/events. Keeping it out of process means callbridge itself stays
provider-agnostic.

Relay contract:
    POST /speak                {correlation_id, text, wait_for_reply}
    POST /messages             {channel, to, text}        -> {message_id}
    POST /calls                {to, text}                 -> {correlation_id}
    POST /calls/{id}/hangup
"""

from typing import Optional

import httpx
import structlog

from callbridge.gateway.base import Gateway, GatewayError
from callbridge.models import Channel

logger = structlog.get_logger()


class HttpGateway(Gateway):
    """Gateway implementation backed by an HTTP relay."""

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
        )

    async def _post(self, path: str, payload: Optional[dict] = None) -> dict:
        try:
            response = await self._client.post(path, json=payload or {})
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.warning(
                "gateway.rejected",
                path=path,
                status_code=e.response.status_code,
                body=e.response.text[:200],
            )
            raise GatewayError(
                f"Gateway rejected {path}: HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            logger.warning("gateway.unreachable", path=path, error=str(e))
            raise GatewayError(f"Gateway request {path} failed: {e}") from e

        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    async def speak(self, correlation_id: str, text: str, wait_for_reply: bool) -> None:
        await self._post(
            "/speak",
            {
                "correlation_id": correlation_id,
                "text": text,
                "wait_for_reply": wait_for_reply,
            },
        )

    async def send(self, channel: Channel, address: str, text: str) -> str:
        data = await self._post(
            "/messages", {"channel": channel.value, "to": address, "text": text}
        )
        message_id = data.get("message_id")
        if not message_id:
            raise GatewayError("Gateway did not return a message_id")
        return str(message_id)

    async def initiate(self, address: str, text: str) -> str:
        data = await self._post("/calls", {"to": address, "text": text})
        correlation_id = data.get("correlation_id")
        if not correlation_id:
            raise GatewayError("Gateway did not return a correlation_id")
        return str(correlation_id)

    async def hangup(self, correlation_id: str) -> None:
        await self._post(f"/calls/{correlation_id}/hangup")

    async def aclose(self) -> None:
        await self._client.aclose()
