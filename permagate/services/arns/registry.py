"""HTTP clients for the ArNS registry and the owner resolver."""

import asyncio
from dataclasses import dataclass
from typing import Any

import httpx

from permagate.common.logging import logger
from permagate.common.metrics import arns_resolver_failures_total


class RegistryError(Exception):
    """The registry could not be read; a sync run cannot continue."""


@dataclass(frozen=True)
class RegistryPage:
    items: dict[str, dict[str, Any]]
    next_cursor: str | None
    has_more: bool


@dataclass(frozen=True)
class ResolverResult:
    owner: str | None
    tx_id: str | None


def parse_registry_page(body: Any) -> RegistryPage:
    """Accept `items` either keyed by name or as a list of records with `name`."""

    if not isinstance(body, dict):
        raise RegistryError("registry page is not a JSON object")
    items = body.get("items") or {}
    if isinstance(items, list):
        items = {item["name"]: item for item in items if isinstance(item, dict) and item.get("name")}
    if not isinstance(items, dict):
        raise RegistryError("registry page items malformed")
    return RegistryPage(
        items=items,
        next_cursor=body.get("nextCursor") or None,
        has_more=bool(body.get("hasMore")),
    )


class RegistryClient:
    """Cursor-paginated reads of leased ArNS records."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def get_leased_records(
        self,
        cursor: str | None = None,
        limit: int = 1000,
        sort_by: str = "name",
        sort_order: str = "asc",
    ) -> RegistryPage:
        params: dict[str, Any] = {"limit": limit, "sortBy": sort_by, "sortOrder": sort_order, "type": "lease"}
        if cursor:
            params["cursor"] = cursor
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                resp = await client.get(f"{self.base_url}/arns/records", params=params)
        except httpx.HTTPError as exc:
            raise RegistryError(f"registry unreachable: {exc}") from exc
        if not resp.is_success:
            raise RegistryError(f"registry request failed (status={resp.status_code})")
        try:
            body = resp.json()
        except ValueError as exc:
            raise RegistryError("registry returned invalid JSON") from exc
        return parse_registry_page(body)


class ResolverClient:
    """Owner / root transaction lookups; failures return None, never raise."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
        service_name: str = "arns",
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport
        self.service_name = service_name

    def _failed(self, name: str, reason: Any) -> None:
        logger.warning("resolver_lookup_failed name=%s reason=%s", name, reason)
        arns_resolver_failures_total.labels(service=self.service_name).inc()

    async def _get(self, name: str) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            return await client.get(f"{self.base_url}/{name}")

    async def resolve(self, name: str) -> ResolverResult | None:
        """`timeout` bounds the whole lookup, not each connect or read phase."""

        try:
            resp = await asyncio.wait_for(self._get(name), timeout=self.timeout)
        except asyncio.TimeoutError:
            self._failed(name, "timeout")
            return None
        except httpx.HTTPError as exc:
            self._failed(name, type(exc).__name__)
            return None
        if not resp.is_success:
            self._failed(name, f"status={resp.status_code}")
            return None
        try:
            body = resp.json()
        except ValueError:
            self._failed(name, "invalid_json")
            return None
        if not isinstance(body, dict):
            self._failed(name, "unexpected_body")
            return None
        return ResolverResult(owner=body.get("owner") or None, tx_id=body.get("txId") or None)
