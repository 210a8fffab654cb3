"""
HTTP client for a REST shared store.

Routes:
    PUT    /records/{key}          upsert one record (camelCase JSON body)
    DELETE /records/{key}          delete one record (404 counts as success)
    GET    /changes?since={token}  {"records": [...], "nextToken": "..."}
"""

import logging

import httpx

from ftt.sync.records import SyncRecord
from ftt.sync.transport import PullResult, TransportResult, parse_payloads

logger = logging.getLogger(__name__)


class HttpShareTransport:
    """
    ShareTransport over HTTP.

    Network and HTTP errors come back as failed results, never exceptions.

    Usage:
        async with HttpShareTransport("https://share.example.com") as transport:
            engine = SyncEngine(transport, session_factory, library)
            await engine.sync_all()
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "HttpShareTransport":
        self._client = httpx.AsyncClient(
            base_url=self.base_url, timeout=self.timeout, transport=self._transport
        )
        return self

    async def __aexit__(self, *args):
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError(
                "Client not initialized. Use 'async with HttpShareTransport(...) as transport:'"
            )
        return self._client

    async def push(self, record: SyncRecord) -> TransportResult:
        """Upsert one record."""
        try:
            response = await self.client.put(f"/records/{record.key}", json=record.to_wire())
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("transport.push_failed key=%s error=%s", record.key, e)
            return TransportResult(ok=False, key=record.key, error=str(e))
        return TransportResult(ok=True, key=record.key)

    async def delete(self, key: str) -> TransportResult:
        """Delete one record; an already-absent record is a success."""
        try:
            response = await self.client.delete(f"/records/{key}")
            if response.status_code != 404:
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("transport.delete_failed key=%s error=%s", key, e)
            return TransportResult(ok=False, key=key, error=str(e))
        return TransportResult(ok=True, key=key)

    async def pull(self, since_token: str | None) -> PullResult:
        """Fetch changes after a token."""
        params = {"since": since_token} if since_token else {}
        try:
            response = await self.client.get("/changes", params=params)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("transport.pull_failed since=%s error=%s", since_token, e)
            return PullResult(ok=False, error=str(e))

        records, rejected = parse_payloads(data.get("records", []))
        return PullResult(
            ok=True, records=records, next_token=data.get("nextToken"), rejected=rejected
        )
