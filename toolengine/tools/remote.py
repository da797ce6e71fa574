"""
Remote service resolution for RemoteProcedure tools.

The dispatcher does not discover services itself: it asks a resolver for an
executable handle by slug and calls it.
"""
import logging
import uuid
from typing import Any, Awaitable, Callable, Mapping, Protocol

import httpx

logger = logging.getLogger(__name__)


class RemoteServiceError(Exception):
    """Exception raised when a remote service cannot be resolved or fails."""
    pass


class RemoteService(Protocol):
    async def execute(self, arguments: Any) -> Any:
        ...


class RemoteServiceResolver(Protocol):
    async def resolve(self, slug: str, version: str | None = None) -> RemoteService:
        ...


class CallableService:
    """Adapts an async callable to the RemoteService protocol."""

    def __init__(self, func: Callable[[Any], Awaitable[Any]]) -> None:
        self._func = func

    async def execute(self, arguments: Any) -> Any:
        return await self._func(arguments)


class StaticServiceResolver:
    """Resolves slugs from an in-memory mapping."""

    def __init__(self, services: Mapping[str, RemoteService] | None = None) -> None:
        self._services = dict(services or {})

    async def resolve(self, slug: str, version: str | None = None) -> RemoteService:
        service = self._services.get(slug)
        if service is None:
            raise RemoteServiceError(f"Unknown remote service: {slug}")
        return service


class JsonRpcService:
    """
    Service reachable over JSON-RPC 2.0.

    Calls are sent as `tools/call` with the slug as tool name. Results that
    carry `structuredContent` return it; other results are returned as-is.
    """

    def __init__(
        self,
        slug: str,
        url: str,
        client: httpx.AsyncClient,
        version: str | None = None
    ) -> None:
        self.slug = slug
        self.url = url
        self.version = version
        self._client = client

    async def execute(self, arguments: Any) -> Any:
        params: dict[str, Any] = {"name": self.slug, "arguments": arguments}
        if self.version:
            params["version"] = self.version

        payload = {
            "jsonrpc": "2.0",
            "id": str(uuid.uuid4()),
            "method": "tools/call",
            "params": params
        }

        logger.debug(f"Calling remote service '{self.slug}' at {self.url}")
        response = await self._client.post(self.url, json=payload)
        response.raise_for_status()
        data = response.json()

        if data.get("error"):
            error = data["error"]
            raise RemoteServiceError(
                f"Remote service '{self.slug}' returned error {error.get('code')}: {error.get('message')}"
            )

        result = data.get("result")
        if isinstance(result, dict):
            if result.get("isError"):
                raise RemoteServiceError(f"Remote service '{self.slug}' reported a failed call")
            if "structuredContent" in result:
                return result["structuredContent"]
        return result


class JsonRpcServiceResolver:
    """Resolves slugs to JSON-RPC endpoints from a slug -> URL map."""

    def __init__(
        self,
        endpoints: Mapping[str, str],
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0
    ) -> None:
        self._endpoints = dict(endpoints)
        self._client = client
        self._owns_client = client is None
        self.timeout = timeout

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))
            self._owns_client = True
        return self._client

    async def resolve(self, slug: str, version: str | None = None) -> RemoteService:
        url = self._endpoints.get(slug)
        if url is None:
            raise RemoteServiceError(f"Unknown remote service: {slug}")
        return JsonRpcService(slug, url, await self._get_client(), version=version)

    async def close(self) -> None:
        """Close the HTTP client if this resolver created it."""
        if self._owns_client and self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
            logger.info("JsonRpcServiceResolver HTTP client closed")
