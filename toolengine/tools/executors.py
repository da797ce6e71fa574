"""
Execution strategies, one per implementation kind.

Strategies raise whatever their underlying call raises; the dispatcher
wraps failures into ToolExecutionError.
"""
import inspect
import logging
import re
from typing import Any
from urllib.parse import quote

import httpx

from toolengine.config import Settings, get_settings
from toolengine.tools.base import MUTATING_METHODS, HttpEndpoint, NativeFunction, RemoteProcedure
from toolengine.tools.remote import RemoteServiceError, RemoteServiceResolver
from toolengine.tools.validation import to_jsonable

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")


async def execute_native(impl: NativeFunction, value: Any) -> Any:
    """Call an in-process function, awaiting it if needed."""
    result = impl.execute(value)
    if inspect.isawaitable(result):
        result = await result
    return result


def render_url(template: str, fields: dict[str, Any]) -> tuple[str, set[str]]:
    """
    Substitute {name} placeholders from input fields.

    Args:
        template: URL template
        fields: Input fields

    Returns:
        Tuple of (url, names of the fields consumed)

    Raises:
        ValueError: If a placeholder has no matching field
    """
    used: set[str] = set()

    def replace(match: re.Match) -> str:
        name = match.group(1)
        if name not in fields or fields[name] is None:
            raise ValueError(f"Missing value for URL parameter '{name}'")
        used.add(name)
        return quote(str(fields[name]), safe="")

    return PLACEHOLDER_PATTERN.sub(replace, template), used


class HttpExecutor:
    """
    Runs HttpEndpoint tools with a shared httpx client.

    Fields consumed by URL placeholders are removed from the payload. For
    POST/PUT/PATCH the remaining fields are the JSON body (or whatever
    body_mapping returns); for other methods they become query parameters.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        settings: Settings | None = None
    ) -> None:
        self.settings = settings or get_settings()
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                headers={"User-Agent": self.settings.http_user_agent},
                timeout=httpx.Timeout(self.settings.http_timeout),
                follow_redirects=True
            )
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if this executor created it."""
        if self._owns_client and self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
            logger.info("HttpExecutor HTTP client closed")

    def build_request(self, impl: HttpEndpoint, value: Any) -> dict[str, Any]:
        """Build httpx request arguments from the validated input."""
        payload = to_jsonable(value)
        fields = payload if isinstance(payload, dict) else {}

        url, used = render_url(impl.url, fields)
        remaining = {k: v for k, v in fields.items() if k not in used}

        request: dict[str, Any] = {
            "method": impl.method,
            "url": url,
            "headers": dict(impl.headers),
            "timeout": impl.timeout or self.settings.http_timeout
        }

        if impl.method in MUTATING_METHODS:
            if impl.body_mapping is not None:
                request["json"] = impl.body_mapping(remaining)
            else:
                request["json"] = remaining if isinstance(payload, dict) else payload
        elif remaining:
            request["params"] = {
                k: v if isinstance(v, (str, int, float, list, tuple)) else str(v)
                for k, v in remaining.items()
                if v is not None
            }

        return request

    async def execute(self, impl: HttpEndpoint, value: Any) -> Any:
        """
        Issue the request and decode the body.

        Returns:
            Decoded JSON, the raw text for non-JSON bodies, or None when empty

        Raises:
            httpx.HTTPStatusError: On a non-2xx response
            httpx.RequestError: On transport failures and timeouts
        """
        request = self.build_request(impl, value)
        client = await self._get_client()

        logger.debug(f"HTTP tool request: {request['method']} {request['url']}")
        response = await client.request(**request)
        response.raise_for_status()

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text


class RemoteExecutor:
    """Runs RemoteProcedure tools through a service resolver."""

    def __init__(self, resolver: RemoteServiceResolver | None = None) -> None:
        self.resolver = resolver

    async def execute(self, impl: RemoteProcedure, value: Any) -> Any:
        if self.resolver is None:
            raise RemoteServiceError("No remote service resolver configured")
        service = await self.resolver.resolve(impl.slug, impl.version)
        return await service.execute(to_jsonable(value))
