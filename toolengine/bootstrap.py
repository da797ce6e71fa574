"""
Engine bootstrap: builds the registry from settings and wires the dispatcher.
"""
import logging

import httpx

from toolengine.config import Settings, get_settings
from toolengine.tools.builders import Toolbox, Workspace, WorkspaceBuilder
from toolengine.tools.dispatcher import ToolDispatcher
from toolengine.tools.loader import load_toolkit_file, register_toolkit
from toolengine.tools.registry import ToolRegistry, merge_registry
from toolengine.tools.remote import JsonRpcServiceResolver, RemoteServiceResolver
from toolengine.tools.stdlib import HackerNewsReader, build_internal_toolbox

logger = logging.getLogger(__name__)


def load_workspace(paths: list[str], allow_override: bool = True) -> Workspace:
    """
    Build a workspace from toolkit definition files.

    Args:
        paths: Toolkit file paths
        allow_override: Passed to the workspace builder

    Returns:
        Workspace with one toolbox per toolkit name
    """
    builder = WorkspaceBuilder(allow_override=allow_override)
    for path in paths:
        register_toolkit(builder, load_toolkit_file(path))
    return builder.build()


def build_registry(settings: Settings | None = None, internal: Toolbox | None = None) -> ToolRegistry:
    """
    Merge the internal toolbox with the configured organization and
    project toolkit files.

    Args:
        settings: Engine settings
        internal: Internal toolbox (standard library if omitted)

    Returns:
        ToolRegistry
    """
    settings = settings or get_settings()
    internal = internal if internal is not None else build_internal_toolbox(settings)

    organizations = {
        org: load_workspace(paths, settings.allow_override)
        for org, paths in settings.organization_toolkit_paths.items()
    }
    project = load_workspace(settings.project_toolkit_paths, settings.allow_override)

    data = merge_registry(
        internal=internal,
        project=project,
        organizations=organizations,
        allow_override=settings.allow_override
    )
    return ToolRegistry(data, settings)


class ToolEngine:
    """Registry, dispatcher and the resources they own."""

    def __init__(
        self,
        registry: ToolRegistry,
        dispatcher: ToolDispatcher,
        resolver: RemoteServiceResolver | None = None,
        news_reader: HackerNewsReader | None = None
    ) -> None:
        self.registry = registry
        self.dispatcher = dispatcher
        self.resolver = resolver
        self.news_reader = news_reader

    async def close(self) -> None:
        await self.dispatcher.close()
        if isinstance(self.resolver, JsonRpcServiceResolver):
            await self.resolver.close()
        if self.news_reader is not None:
            await self.news_reader.close()
        logger.info("ToolEngine closed")


def create_engine(
    settings: Settings | None = None,
    http_client: httpx.AsyncClient | None = None,
    resolver: RemoteServiceResolver | None = None
) -> ToolEngine:
    """
    Create a ready-to-use engine from settings.

    Args:
        settings: Engine settings
        http_client: Shared client for HTTP tools and the news reader
        resolver: Remote service resolver (JSON-RPC over remote_services if omitted)

    Returns:
        ToolEngine
    """
    settings = settings or get_settings()

    if resolver is None and settings.remote_services:
        resolver = JsonRpcServiceResolver(
            settings.remote_services,
            client=http_client,
            timeout=settings.http_timeout
        )

    news_reader = HackerNewsReader(client=http_client, settings=settings)
    registry = build_registry(settings, build_internal_toolbox(settings, news_reader))
    dispatcher = ToolDispatcher(
        registry,
        http_client=http_client,
        resolver=resolver,
        settings=settings
    )

    logger.info(f"ToolEngine created: {len(registry)} tools, {len(registry.list_toolkits())} toolkits")
    return ToolEngine(registry, dispatcher, resolver, news_reader)
