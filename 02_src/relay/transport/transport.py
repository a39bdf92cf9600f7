"""Outbound chat transport over an HTTP sender API."""

from typing import Protocol

import httpx

from ..errors import RateLimitedError, TransportError
from ..logging_config import context, get_logger
from ..models import MediaType

logger = get_logger(__name__)


class ITransport(Protocol):
    """Single-attempt delivery calls. Pacing and retries live in the Dispatcher."""

    async def send_text(self, correspondent_id: str, text: str) -> bool:
        ...

    async def send_media(
        self,
        correspondent_id: str,
        url: str,
        media_type: MediaType,
        caption: str | None = None,
    ) -> bool:
        ...

    async def send_voice(self, correspondent_id: str, audio: bytes) -> bool:
        ...


def _chat_address(correspondent_id: str) -> str:
    return correspondent_id if "@" in correspondent_id else f"{correspondent_id}@s.whatsapp.net"


class HttpTransport:
    """Sender API client.

    Every send is a POST to ``{base_url}/send-message``. Voice notes are
    uploaded to ``{base_url}/upload`` first and sent by URL.
    Raises RateLimitedError on HTTP 429 and TransportError on other HTTP
    failures; returns False when the API answers ``{"success": false}``.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str | None,
        timeout: float = 30.0,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={"Authorization": f"Bearer {api_key}"} if api_key else {},
            timeout=timeout,
            transport=http_transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _post(self, path: str, **kwargs) -> dict:
        try:
            response = await self._client.post(path, **kwargs)
        except httpx.HTTPError as e:
            raise TransportError(f"{path} failed: {e}") from e

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitedError(
                retry_after=float(retry_after) if retry_after and retry_after.isdigit() else None
            )
        if response.status_code >= 400:
            raise TransportError(f"{path} returned HTTP {response.status_code}")

        try:
            return response.json()
        except ValueError:
            return {"success": True}

    async def _send(self, correspondent_id: str, payload: dict) -> bool:
        data = await self._post(
            "/send-message", json={"to": _chat_address(correspondent_id), **payload}
        )
        if data.get("success", True):
            return True
        logger.warning(
            "Send rejected: %s", data.get("error"), extra=context(correspondent_id)
        )
        return False

    async def send_text(self, correspondent_id: str, text: str) -> bool:
        return await self._send(correspondent_id, {"text": text})

    async def send_media(
        self,
        correspondent_id: str,
        url: str,
        media_type: MediaType,
        caption: str | None = None,
    ) -> bool:
        url_field = "videoUrl" if media_type is MediaType.VIDEO else "imageUrl"
        payload = {url_field: url}
        if caption:
            payload["text"] = caption
        return await self._send(correspondent_id, payload)

    async def send_voice(self, correspondent_id: str, audio: bytes) -> bool:
        upload = await self._post(
            "/upload", content=audio, headers={"Content-Type": "audio/ogg"}
        )
        audio_url = upload.get("publicUrl") or upload.get("url")
        if not audio_url:
            logger.warning("Voice upload returned no URL", extra=context(correspondent_id))
            return False
        return await self._send(correspondent_id, {"audioUrl": audio_url})
