"""Unit tests for HTTP endpoint tools."""

import json

import httpx
import pytest

from toolengine.tools.base import HttpEndpoint, Tool, ToolDefinition
from toolengine.tools.builders import WorkspaceBuilder
from toolengine.tools.dispatcher import ToolDispatcher
from toolengine.tools.errors import ToolExecutionError
from toolengine.tools.executors import HttpExecutor, render_url
from toolengine.tools.registry import ToolRegistry, merge_registry

TODO_INPUT = {
    "type": "object",
    "properties": {"id": {"type": "integer"}},
    "required": ["id"]
}


def http_tool(name: str, url: str, method: str = "GET", **kwargs) -> Tool:
    return Tool(
        definition=ToolDefinition(name=name, description=f"{name} endpoint"),
        implementation=HttpEndpoint(url=url, method=method, **kwargs)
    )


def build_dispatcher(settings, handler, *tools) -> ToolDispatcher:
    workspace = WorkspaceBuilder()
    workspace.toolbox("api").add_tools(tools)
    registry = ToolRegistry(merge_registry(project=workspace.build()), settings)
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ToolDispatcher(registry, http_client=client, settings=settings)


@pytest.mark.asyncio
async def test_get_with_url_placeholder(test_settings):
    """A templated GET substitutes the id and issues exactly one request."""
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"id": 7, "title": "write tests"})

    tool = http_tool(
        "get-todo",
        "https://api.example.com/todos/{id}",
        input_schema=TODO_INPUT,
        headers={"X-Api-Key": "secret"}
    )
    dispatcher = build_dispatcher(test_settings, handler, tool)

    result = await dispatcher.run("api/get-todo", {"id": 7})

    assert result.unwrap() == {"id": 7, "title": "write tests"}
    assert len(requests) == 1
    assert requests[0].method == "GET"
    assert str(requests[0].url) == "https://api.example.com/todos/7"
    assert requests[0].headers["X-Api-Key"] == "secret"


@pytest.mark.asyncio
async def test_get_sends_remaining_fields_as_query(test_settings):
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=[])

    tool = http_tool("search", "https://api.example.com/{kind}/search", input_schema=dict)
    dispatcher = build_dispatcher(test_settings, handler, tool)

    await dispatcher.run("api/search", {"kind": "todos", "q": "milk", "page": 2, "owner": None})

    url = requests[0].url
    assert url.path == "/todos/search"
    assert dict(url.params) == {"q": "milk", "page": "2"}


@pytest.mark.asyncio
async def test_list_query_values_become_repeated_keys(test_settings):
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=[])

    tool = http_tool("search", "https://api.example.com/search", input_schema=dict)
    dispatcher = build_dispatcher(test_settings, handler, tool)

    await dispatcher.run("api/search", {"tag": ["a", "b"]})

    assert requests[0].url.params.get_list("tag") == ["a", "b"]

@pytest.mark.asyncio
async def test_post_sends_json_body(test_settings):
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(201, json={"created": True})

    tool = http_tool("create-todo", "https://api.example.com/lists/{list_id}/todos", method="post")
    dispatcher = build_dispatcher(test_settings, handler, tool)

    result = await dispatcher.run("api/create-todo", {"list_id": 3, "title": "milk"})

    assert result.output == {"created": True}
    assert bodies == [{"title": "milk"}]


@pytest.mark.asyncio
async def test_body_mapping(test_settings):
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={})

    tool = http_tool(
        "create-todo",
        "https://api.example.com/todos",
        method="PUT",
        body_mapping=lambda fields: {"data": fields}
    )
    dispatcher = build_dispatcher(test_settings, handler, tool)

    await dispatcher.run("api/create-todo", {"title": "milk"})

    assert bodies == [{"data": {"title": "milk"}}]


@pytest.mark.asyncio
async def test_text_and_empty_responses(test_settings):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/text":
            return httpx.Response(200, text="plain words")
        return httpx.Response(204)

    dispatcher = build_dispatcher(
        test_settings,
        handler,
        http_tool("text", "https://api.example.com/text"),
        http_tool("empty", "https://api.example.com/empty", method="DELETE")
    )

    assert (await dispatcher.run("api/text", {})).output == "plain words"
    empty = await dispatcher.run("api/empty", {})
    assert empty.ok
    assert empty.output is None


@pytest.mark.asyncio
@pytest.mark.parametrize("status,retryable", [(500, True), (503, True), (429, True), (404, False), (400, False)])
async def test_http_errors_become_execution_errors(test_settings, status, retryable):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, json={"error": "nope"})

    dispatcher = build_dispatcher(test_settings, handler, http_tool("get-todo", "https://api.example.com/todos"))

    result = await dispatcher.run("api/get-todo", {})

    assert isinstance(result.error, ToolExecutionError)
    assert isinstance(result.error.cause, httpx.HTTPStatusError)
    assert result.error.retryable is retryable
    assert f"HTTP {status}" in str(result.error)


@pytest.mark.asyncio
async def test_transport_errors_are_retryable(test_settings):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    dispatcher = build_dispatcher(test_settings, handler, http_tool("get-todo", "https://api.example.com/todos"))

    result = await dispatcher.run("api/get-todo", {})

    assert isinstance(result.error, ToolExecutionError)
    assert result.error.retryable is True


@pytest.mark.asyncio
async def test_missing_placeholder_value(test_settings):
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    dispatcher = build_dispatcher(test_settings, handler, http_tool("get-todo", "https://api.example.com/todos/{id}"))

    result = await dispatcher.run("api/get-todo", {})

    assert isinstance(result.error, ToolExecutionError)
    assert "Missing value for URL parameter 'id'" in str(result.error)


def test_render_url_quotes_values():
    url, used = render_url("https://api.example.com/search/{term}", {"term": "a b/c", "page": 1})

    assert url == "https://api.example.com/search/a%20b%2Fc"
    assert used == {"term"}


def test_build_request_uses_default_timeout(test_settings):
    executor = HttpExecutor(settings=test_settings)
    impl = HttpEndpoint(url="https://api.example.com/todos/{id}")

    request = executor.build_request(impl, {"id": 1})

    assert request["timeout"] == test_settings.http_timeout
    assert "params" not in request
    assert "json" not in request
