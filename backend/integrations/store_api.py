"""
Store REST API Client

Writes migration batches through the target store's HTTP API instead of
touching its database. Authenticates with a bearer API key.

Reads and upsert writes are retried on transport errors and 5xx responses.
Transaction batches are never retried: the API inserts them without a
natural key, so a retry after a lost response would duplicate them.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from integrations.base import (
    BatchWriteResult,
    EntityType,
    MigrationStore,
    StoreType,
    register_store,
)

NON_IDEMPOTENT = frozenset({EntityType.TRANSACTIONS})


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return False


def to_json(value: Any) -> Any:
    """Make a payload JSON-safe: Decimals as strings, enums as values."""
    if isinstance(value, dict):
        return {k: to_json(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json(v) for v in value]
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


@register_store
class HttpMigrationStore(MigrationStore):
    """
    REST API destination.

    Config:
        base_url: API root, e.g. https://store.example.com/api/v1
        api_key: bearer token
        timeout: request timeout in seconds
        max_attempts: attempts for retryable calls (default 3)
        retry_wait: tenacity wait strategy (default exponential 1–10s)
        transport: optional httpx transport (tests)
    """

    @property
    def store_type(self) -> StoreType:
        return StoreType.REST_API

    def __init__(self, config: dict[str, Any]):
        super().__init__(config)
        self.base_url = config["base_url"].rstrip("/")
        self.headers = {
            "Authorization": f"Bearer {config.get('api_key', '')}",
            "Content-Type": "application/json",
        }
        self.max_attempts = config.get("max_attempts", 3)
        self.retry_wait = config.get("retry_wait") or wait_exponential(min=1, max=10)
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=config.get("timeout", 30.0),
            transport=config.get("transport"),
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        response = await self._client.request(method, path, **kwargs)
        response.raise_for_status()
        return response

    async def _request(self, method: str, path: str, *, retry: bool = True, **kwargs: Any) -> httpx.Response:
        if not retry:
            return await self._send(method, path, **kwargs)
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self.retry_wait,
            retry=retry_if_exception(_is_retryable),
            reraise=True,
        ):
            with attempt:
                return await self._send(method, path, **kwargs)
        raise RuntimeError("unreachable")

    async def test_connection(self) -> bool:
        try:
            await self._request("GET", "/health")
            return True
        except httpx.HTTPError as exc:
            self.logger.error("store_api.connection_failed", error=str(exc))
            return False

    async def write_batch(self, entity: EntityType, records: list[dict[str, Any]]) -> BatchWriteResult:
        response = await self._request(
            "POST",
            f"/migration/{entity.value}",
            retry=entity not in NON_IDEMPOTENT,
            json={"records": to_json(records)},
        )
        body = response.json()
        written = int(body.get("written", 0))
        errors = [str(e) for e in body.get("errors", [])]
        failed = int(body.get("failed", len(errors)))
        self.logger.info("store_api.batch_written", entity=entity.value, written=written, failed=failed)
        return BatchWriteResult.from_counts(written, failed, errors)

    async def ensure_vendors(self, names: Iterable[str]) -> int:
        cleaned = [n.strip() for n in names if n and n.strip()]
        if not cleaned:
            return 0
        response = await self._request("POST", "/migration/vendors", json={"names": cleaned})
        return int(response.json().get("created", 0))

    async def count_migrated(self, entity: EntityType) -> int:
        response = await self._request("GET", f"/migration/{entity.value}/count")
        return int(response.json()["count"])

    async def find_customer(self, reference_id: str) -> dict[str, Any] | None:
        try:
            response = await self._request("GET", f"/customers/by-reference/{reference_id}")
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 404:
                return None
            raise
        return response.json()

    async def total_migrated_quantity(self) -> Decimal:
        response = await self._request("GET", "/migration/products/quantity")
        return Decimal(str(response.json().get("total", 0)))
