"""Pytest configuration and shared fixtures for toolengine tests."""

from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from pydantic import BaseModel

from toolengine.bootstrap import create_engine
from toolengine.config import Settings
from toolengine.main import create_app
from toolengine.tools.base import NativeFunction, Tool, ToolDefinition
from toolengine.tools.builders import ToolboxBuilder, WorkspaceBuilder
from toolengine.tools.dispatcher import ToolDispatcher
from toolengine.tools.registry import ToolRegistry, merge_registry
from toolengine.tools.stdlib.calculator import build_calculator_tool


class AddInput(BaseModel):
    a: int
    b: int


class AddOutput(BaseModel):
    sum: int


@pytest.fixture
def test_settings():
    """Settings isolated from the environment and any .env file."""
    return Settings(_env_file=None, log_level="DEBUG", news_api_base_url="https://news.test/v0")


@pytest.fixture
def make_tool():
    """Factory for native tools with explicit schemas."""

    def factory(name: str, execute, input_schema: Any = Any, output_schema: Any = Any, **metadata) -> Tool:
        return Tool(
            definition=ToolDefinition(name=name, description=f"{name} tool", **metadata),
            implementation=NativeFunction(
                execute=execute,
                input_schema=input_schema,
                output_schema=output_schema
            )
        )

    return factory


@pytest.fixture
def add_tool(make_tool):
    return make_tool("add", lambda p: AddOutput(sum=p.a + p.b), AddInput, AddOutput)


@pytest.fixture
def registry(test_settings, add_tool):
    """Registry with the internal calculator and a project math/add tool."""
    internal = ToolboxBuilder("standard").add_tool(build_calculator_tool()).build()

    workspace = WorkspaceBuilder()
    workspace.toolbox("math").add_tool(add_tool)

    data = merge_registry(internal=internal, project=workspace.build())
    return ToolRegistry(data, test_settings)


@pytest_asyncio.fixture
async def dispatcher(registry, test_settings):
    dispatcher = ToolDispatcher(registry, settings=test_settings)
    yield dispatcher
    await dispatcher.close()


@pytest.fixture
def test_app(test_settings):
    """FastAPI application over an engine built from test settings."""
    return create_app(settings=test_settings, engine=create_engine(test_settings))


@pytest_asyncio.fixture
async def async_client(test_app):
    """Async HTTP client for the API, with the lifespan running."""
    async with test_app.router.lifespan_context(test_app):
        transport = ASGITransport(app=test_app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
