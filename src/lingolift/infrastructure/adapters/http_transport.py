import logging
from typing import Any

import httpx
from pydantic import ValidationError

from lingolift.domain.constants import DEFAULT_SERVER_URL, SYNC_ENDPOINT
from lingolift.domain.errors import SyncTransportError
from lingolift.domain.models import ChangeSet, ServerUpdateSet
from lingolift.domain.ports import SyncTransport
from lingolift.infrastructure.wire import decode_server_updates, encode_change_set


class HttpSyncTransport(SyncTransport):
    """Exchanges change-sets with the sync server in a single JSON POST."""

    def __init__(
        self,
        base_url: str = DEFAULT_SERVER_URL,
        api_key: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.logger = logging.getLogger(__name__)
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._client = client
        self.logger.debug(
            f"HttpSyncTransport initialized with url={self.url} (auth={bool(api_key)})"
        )

    @property
    def url(self) -> str:
        return f"{self.base_url}{SYNC_ENDPOINT}"

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def exchange(self, change_set: ChangeSet) -> ServerUpdateSet:
        body = encode_change_set(change_set)
        data = await self._post(body)
        try:
            return decode_server_updates(data)
        except ValidationError as e:
            self.logger.error(f"Sync response did not match the protocol: {e}")
            raise SyncTransportError("Malformed sync response", cause=e) from e

    async def _post(self, body: dict[str, Any]) -> Any:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)

        try:
            resp = await self._client.post(self.url, json=body, headers=self._headers())
        except httpx.HTTPError as e:
            self.logger.error(f"Sync network error: {e}")
            raise SyncTransportError(f"Sync request failed: {e}", cause=e) from e

        if not resp.is_success:
            self.logger.error(f"Sync failed with status: {resp.status_code}")
            raise SyncTransportError(
                f"Sync failed with status: {resp.status_code}",
                status_code=resp.status_code,
            )

        try:
            return resp.json()
        except ValueError as e:
            raise SyncTransportError("Sync response is not JSON", cause=e) from e

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "HttpSyncTransport":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
