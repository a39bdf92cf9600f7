"""Media catalog: fetching, TTL caching and id-based resolution."""

import re
import time
from typing import Callable, Protocol

import httpx

from ..logging_config import get_logger
from ..models import MediaDescriptor, MediaType

logger = get_logger(__name__)

UNSUPPORTED_FORMATS = {"pdf", "psd", "ai", "eps", "svg"}

# Random suffix some asset hosts append to uploaded file names.
_UPLOAD_SUFFIX = re.compile(r"_[a-z0-9]{6}$", re.IGNORECASE)


def clean_description(text: str) -> str:
    """Human-readable form of an asset description."""
    return re.sub(r"\s+", " ", re.sub(r"[-_]", " ", text)).strip()


def description_from_key(key: str) -> str:
    """Derive a description from an asset key like 'folder/botox_before_after_x1y2z3'."""
    name = key.rsplit("/", 1)[-1]
    return re.sub(r"[-_.]", " ", _UPLOAD_SUFFIX.sub("", name)).strip()


class ICatalogSource(Protocol):
    """Where the media list comes from."""

    async def fetch(self) -> list[MediaDescriptor]:
        """Fetch the full catalog, in catalog order."""
        ...


class StaticCatalogSource:
    """Fixed in-process catalog."""

    def __init__(self, items: list[MediaDescriptor] | None = None):
        self._items = list(items or [])

    async def fetch(self) -> list[MediaDescriptor]:
        return list(self._items)


class HttpCatalogSource:
    """Catalog served as a JSON array over HTTP.

    Each entry looks like::

        {"public_id": "clinic/lips_before_after_ab12cd",
         "secure_url": "https://...", "resource_type": "image",
         "format": "jpg", "description": "...", "caption": "..."}

    `description` falls back to `alt`, then to a name derived from the
    public id. Raw resources and unsupported formats are skipped.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        api_key: str | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._url = url
        self._timeout = timeout
        self._http_transport = http_transport
        self._headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}

    async def fetch(self) -> list[MediaDescriptor]:
        async with httpx.AsyncClient(
            timeout=self._timeout, transport=self._http_transport
        ) as client:
            response = await client.get(self._url, headers=self._headers)
            response.raise_for_status()
            payload = response.json()

        resources = payload.get("resources", []) if isinstance(payload, dict) else payload
        items = []
        for resource in resources:
            item = self._to_descriptor(resource)
            if item:
                items.append(item)
        return items

    @staticmethod
    def _to_descriptor(resource: dict) -> MediaDescriptor | None:
        if not isinstance(resource, dict):
            logger.warning("Skipping malformed catalog entry: %r", resource)
            return None

        resource_type = resource.get("resource_type", "image")
        fmt = (resource.get("format") or "").lower()
        url = resource.get("secure_url") or resource.get("url")
        if resource_type == "raw" or fmt in UNSUPPORTED_FORMATS or not url:
            return None

        key = resource.get("public_id") or url
        description = (
            resource.get("description")
            or resource.get("alt")
            or description_from_key(key)
        )
        return MediaDescriptor(
            key=key,
            url=url,
            type=MediaType.VIDEO if resource_type == "video" else MediaType.IMAGE,
            description=description,
            caption=resource.get("caption"),
        )


class MediaCatalog:
    """TTL-cached view over a catalog source.

    Items are addressed by their 1-based position in the catalog. When a
    refresh fails, the last good list keeps being served.
    """

    def __init__(
        self,
        source: ICatalogSource,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._source = source
        self._ttl = ttl_seconds
        self._clock = clock
        self._items: list[MediaDescriptor] = []
        self._fetched_at: float | None = None

    def _is_fresh(self) -> bool:
        return (
            self._fetched_at is not None
            and self._clock() - self._fetched_at < self._ttl
        )

    async def items(self) -> list[MediaDescriptor]:
        """Current catalog, refreshed when the cache has expired."""
        if self._is_fresh():
            return self._items

        try:
            items = await self._source.fetch()
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            logger.error("Failed to fetch media catalog: %s", e)
            return self._items

        self._items = items
        self._fetched_at = self._clock()
        logger.info("Media catalog loaded", extra={"context": {"count": len(items)}})
        return self._items

    async def refresh(self) -> list[MediaDescriptor]:
        """Force a reload on the next access and return the fresh list."""
        self._fetched_at = None
        return await self.items()

    async def resolve(self, ref: str | int) -> tuple[str, MediaDescriptor] | None:
        """Resolve a 1-based catalog id to (canonical id, item).

        "01", "#1" and "1" all resolve to ("1", first item). Returns None for
        anything out of range or non-numeric.
        """
        try:
            index = int(str(ref).strip().lstrip("#")) - 1
        except ValueError:
            logger.warning("Non-numeric media reference: %r", ref)
            return None

        items = await self.items()
        if index < 0 or index >= len(items):
            logger.warning(
                "Invalid media id %s (catalog size %d)", ref, len(items)
            )
            return None
        return str(index + 1), items[index]

    async def get_by_id(self, ref: str | int) -> MediaDescriptor | None:
        """Resolve a 1-based catalog id. Returns None for anything else."""
        resolved = await self.resolve(ref)
        return resolved[1] if resolved else None

    async def render(self) -> str:
        """Enumerated listing for the system instructions."""
        items = await self.items()
        return "\n".join(
            f"{i}. [{item.type.value}] {clean_description(item.description)}"
            for i, item in enumerate(items, start=1)
        )
