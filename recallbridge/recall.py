from __future__ import annotations

import json
import logging
from typing import Any, Optional, Tuple

import httpx

from .config import Settings
from .hub import Hub

log = logging.getLogger(__name__)

API_ERROR = "Error calling Recall.ai API:"


class RecallClient:
    """Calls Recall.ai ``meeting_direct_connect`` and narrates it to the dashboard."""

    def __init__(
        self,
        settings: Settings,
        hub: Hub,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._url = settings.RECALL_API_URL
        self._timeout = settings.RECALL_TIMEOUT_SECONDS
        self._headers = {
            "Authorization": f"Token {settings.RECALL_API_KEY}",
            "Content-Type": "application/json",
        }
        self._hub = hub
        self._transport = transport

    async def start_direct_connect(self, payload: dict[str, Any]) -> Tuple[int, Any]:
        await self._hub.broadcast(
            "Sending request to Recall.ai API (/v1/meeting_direct_connect) with payload:",
            json.dumps(payload),
        )
        try:
            async with httpx.AsyncClient(
                transport=self._transport, timeout=self._timeout
            ) as client:
                resp = await client.post(self._url, json=payload, headers=self._headers)
                resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            detail = _body(exc.response)
            log.error("%s %s %s", API_ERROR, exc.response.status_code, detail)
            await self._hub.broadcast(API_ERROR, detail)
            raise
        except httpx.HTTPError as exc:
            log.error("%s %r", API_ERROR, exc)
            await self._hub.broadcast(API_ERROR, str(exc) or repr(exc))
            raise

        data = _body(resp)
        await self._hub.broadcast("Successfully called Recall.ai API. Response:", data)
        return resp.status_code, data


def _body(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text
