# fleetgate/services/directory_client.py
"""
Remote Directory client — the authoritative system of record.

Speaks the PostgREST dialect exposed by Supabase:
  GET    /rest/v1/<table>?select=*&<field>=eq.<value>
  POST   /rest/v1/<table>                 (Prefer: return=representation)
  PATCH  /rest/v1/<table>?<key>=eq.<id>
  DELETE /rest/v1/<table>?<key>=eq.<id>

Failures are mapped to the store taxonomy so DualStore can fall back:
  connection errors, timeouts, 5xx, not configured → StoreUnreachable
  4xx (RLS/permission, validation, missing table)   → StoreRejected
  update/delete that matched no row                 → RecordNotFound
"""

from typing import Optional

import httpx

from fleetgate.config import settings
from fleetgate.services.collections import Collection
from fleetgate.utils.exceptions import StoreUnreachable, StoreRejected, RecordNotFound
from fleetgate.utils.logger import get_logger

logger = get_logger(__name__)


class RemoteDirectory:
    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url if base_url is not None else settings.DIRECTORY_URL
        api_key = api_key if api_key is not None else settings.DIRECTORY_API_KEY
        timeout = timeout if timeout is not None else settings.DIRECTORY_TIMEOUT_SECONDS

        self._client: Optional[httpx.Client] = None
        if self.base_url and api_key:
            self._client = httpx.Client(
                base_url=f"{self.base_url.rstrip('/')}/rest/v1",
                headers={"apikey": api_key, "Authorization": f"Bearer {api_key}"},
                timeout=timeout,
                transport=transport,
            )

    @property
    def configured(self) -> bool:
        return self._client is not None

    def close(self):
        if self._client is not None:
            self._client.close()

    def _request(self, method: str, collection: Collection, *, params: dict = None,
                 json: dict = None, prefer: str = None) -> list[dict]:
        if self._client is None:
            raise StoreUnreachable("Directory not configured (offline mode)", collection.table)

        headers = {"Prefer": prefer} if prefer else None
        try:
            response = self._client.request(
                method, f"/{collection.table}", params=params, json=json, headers=headers
            )
        except httpx.TransportError as e:
            raise StoreUnreachable(f"{method} {collection.table}: {e}", collection.table) from e

        if response.status_code >= 500:
            raise StoreUnreachable(
                f"{method} {collection.table} → HTTP {response.status_code}", collection.table
            )
        if response.status_code >= 400:
            raise StoreRejected(
                f"{method} {collection.table} → HTTP {response.status_code}: {response.text[:200]}",
                collection.table,
            )

        if not response.content:
            return []
        data = response.json()
        return data if isinstance(data, list) else [data]

    def list(self, collection: Collection, filters: dict = None) -> list[dict]:
        params = {"select": "*"}
        for field, value in (filters or {}).items():
            params[field] = f"eq.{value}"
        return self._request("GET", collection, params=params)

    def insert(self, collection: Collection, record: dict) -> dict:
        rows = self._request("POST", collection, json=record, prefer="return=representation")
        return rows[0] if rows else dict(record)

    def update(self, collection: Collection, key, changes: dict) -> dict:
        rows = self._request(
            "PATCH", collection,
            params={collection.key: f"eq.{key}"},
            json=changes,
            prefer="return=representation",
        )
        if not rows:
            raise RecordNotFound(f"{collection.table}:{key}", collection.table)
        return rows[0]

    def delete(self, collection: Collection, key) -> None:
        rows = self._request(
            "DELETE", collection,
            params={collection.key: f"eq.{key}"},
            prefer="return=representation",
        )
        if not rows:
            raise RecordNotFound(f"{collection.table}:{key}", collection.table)

    def ping(self, collection: Collection) -> str:
        """Health probe: 'ok', 'offline' (not configured) or an error string."""
        if not self.configured:
            return "offline"
        try:
            self._request("GET", collection, params={"select": collection.key, "limit": "1"})
            return "ok"
        except (StoreUnreachable, StoreRejected) as e:
            logger.warning(f"[DIRECTORY] Health probe failed: {e}")
            return f"error: {e}"
