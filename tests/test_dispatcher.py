"""Unit tests for the execution dispatcher."""

import asyncio

import httpx
import pytest

from toolengine.models.schemas import ExecutionStage, ToolCall, ToolCallStatus
from toolengine.tools.base import Tool, ToolDefinition, function_tool
from toolengine.tools.builders import WorkspaceBuilder
from toolengine.tools.dispatcher import ToolDispatcher
from toolengine.tools.errors import (
    ToolExecutionError,
    ToolInputValidationError,
    ToolNotFoundError,
    ToolOutputValidationError,
)
from toolengine.tools.registry import ToolRegistry, merge_registry
from toolengine.tools.stdlib.calculator import CalculatorInput, CalculatorOutput


def build_dispatcher(settings, *tools, namespace="test", **kwargs) -> ToolDispatcher:
    workspace = WorkspaceBuilder()
    workspace.toolbox(namespace).add_tools(tools)
    registry = ToolRegistry(merge_registry(project=workspace.build()), settings)
    return ToolDispatcher(registry, settings=settings, **kwargs)


@pytest.mark.asyncio
async def test_calculator_success(dispatcher):
    result = await dispatcher.run("calculator", {"expression": "2 + 2 * 5"})

    assert result.status is ToolCallStatus.SUCCESS
    assert result.output.result == 12
    assert result.stage is ExecutionStage.DONE
    assert result.error is None


@pytest.mark.asyncio
async def test_calculator_missing_input(dispatcher):
    result = await dispatcher.run("calculator", {})

    assert result.status is ToolCallStatus.FAILED
    assert isinstance(result.error, ToolInputValidationError)
    assert result.error.tool_name == "calculator"
    assert [issue.path for issue in result.error.issues] == ["expression"]
    assert result.stage is ExecutionStage.LOOKED_UP


@pytest.mark.asyncio
async def test_unknown_tool(dispatcher):
    result = await dispatcher.run("nonexistent-tool", {})

    assert isinstance(result.error, ToolNotFoundError)
    assert result.error.tool_name == "nonexistent-tool"
    assert result.stage is ExecutionStage.PENDING


@pytest.mark.asyncio
async def test_error_kinds_can_be_matched(dispatcher):
    result = await dispatcher.run("nonexistent-tool", {})

    match result.error:
        case ToolNotFoundError(name):
            matched = name
        case _:
            matched = None

    assert matched == "nonexistent-tool"


@pytest.mark.asyncio
async def test_invalid_input_never_reaches_implementation(test_settings, make_tool):
    calls = []
    spy = make_tool("spy", lambda p: calls.append(p) or {"result": 1.0}, CalculatorInput, CalculatorOutput)
    dispatcher = build_dispatcher(test_settings, spy)

    result = await dispatcher.run("test/spy", {"expression": 42})

    assert isinstance(result.error, ToolInputValidationError)
    assert calls == []


@pytest.mark.asyncio
async def test_output_is_validated_after_success(test_settings, make_tool):
    liar = make_tool("liar", lambda p: {"result": "not a number"}, CalculatorInput, CalculatorOutput)
    dispatcher = build_dispatcher(test_settings, liar)

    result = await dispatcher.run("test/liar", {"expression": "1"})

    assert isinstance(result.error, ToolOutputValidationError)
    assert result.error.issues[0].path == "result"
    assert result.stage is ExecutionStage.EXECUTING
    assert result.output is None


@pytest.mark.asyncio
async def test_native_exception_becomes_execution_error(test_settings, make_tool):
    def explode(params):
        raise RuntimeError("boom")

    dispatcher = build_dispatcher(test_settings, make_tool("explode", explode, dict, dict))

    result = await dispatcher.run("test/explode", {"x": 1})

    assert isinstance(result.error, ToolExecutionError)
    assert isinstance(result.error.cause, RuntimeError)
    assert result.error.input == {"x": 1}
    assert result.error.retryable is False
    assert "boom" in str(result.error)
    with pytest.raises(ToolExecutionError):
        result.unwrap()


@pytest.mark.asyncio
async def test_nested_tool_error_is_reported_under_calling_tool(test_settings, make_tool):
    def outer(params):
        raise ToolExecutionError("other/tool", "inner boom")

    dispatcher = build_dispatcher(test_settings, make_tool("outer", outer, dict, dict), namespace="ns")

    result = await dispatcher.run("ns/outer", {"x": 1})

    assert isinstance(result.error, ToolExecutionError)
    assert result.error.tool_name == "ns/outer"
    assert result.error.input == {"x": 1}
    assert isinstance(result.error.cause, ToolExecutionError)
    assert result.error.cause.tool_name == "other/tool"

@pytest.mark.asyncio
async def test_async_function_tool(test_settings):
    async def greet(name: str, punctuation: str = "!") -> str:
        await asyncio.sleep(0)
        return f"Hello, {name}{punctuation}"

    dispatcher = build_dispatcher(test_settings, function_tool(greet, output_schema=str))

    result = await dispatcher.run("test/greet", {"name": "Ada"})

    assert result.unwrap() == "Hello, Ada!"


@pytest.mark.asyncio
async def test_tool_timeout(test_settings):
    async def slow() -> str:
        await asyncio.sleep(1)
        return "late"

    dispatcher = build_dispatcher(test_settings, function_tool(slow, timeout=0.05))

    result = await dispatcher.run("test/slow", {})

    assert isinstance(result.error, ToolExecutionError)
    assert result.error.retryable is True


@pytest.mark.asyncio
async def test_unsupported_implementation(test_settings):
    odd = Tool.model_construct(
        definition=ToolDefinition(name="odd", description="odd tool"),
        implementation=object()
    )
    dispatcher = build_dispatcher(test_settings, odd)

    result = await dispatcher.run("test/odd", {})

    assert isinstance(result.error, ToolExecutionError)
    assert "unsupported implementation: object" in str(result.error)


@pytest.mark.asyncio
async def test_allowed_tools_patterns(registry, test_settings):
    dispatcher = ToolDispatcher(registry, allowed_tools=["math/*"], settings=test_settings)

    denied = await dispatcher.run("calculator", {})
    allowed = await dispatcher.run("math/add", {"a": 1, "b": 2})

    assert isinstance(denied.error, ToolExecutionError)
    assert "permission denied" in str(denied.error)
    assert denied.stage is ExecutionStage.LOOKED_UP
    assert allowed.ok


@pytest.mark.asyncio
async def test_execute_tool_call_with_json_arguments(dispatcher):
    result = await dispatcher.execute(
        ToolCall(tool_name="math/add", arguments='{"a": 4, "b": 5}', call_id="call-1")
    )

    assert result.call_id == "call-1"
    assert result.output.sum == 9


@pytest.mark.asyncio
async def test_execute_tool_call_with_malformed_json(dispatcher):
    result = await dispatcher.execute(ToolCall(tool_name="math/add", arguments="{a: 4"))

    assert isinstance(result.error, ToolInputValidationError)
    assert result.error.issues[0].type == "json_invalid"


@pytest.mark.asyncio
async def test_execute_tool_call_checks_permission_before_json(registry, test_settings):
    dispatcher = ToolDispatcher(registry, allowed_tools=["math/*"], settings=test_settings)

    result = await dispatcher.execute(ToolCall(tool_name="calculator", arguments="{bad"))

    assert isinstance(result.error, ToolExecutionError)
    assert "permission denied" in str(result.error)

@pytest.mark.asyncio
async def test_run_batch_keeps_order(dispatcher):
    calls = [
        ToolCall(tool_name="math/add", arguments={"a": i, "b": i})
        for i in range(5)
    ]

    results = await dispatcher.run_batch(calls)

    assert [r.output.sum for r in results] == [0, 2, 4, 6, 8]
    assert [r.call_id for r in results] == [c.call_id for c in calls]


@pytest.mark.asyncio
async def test_run_batch_fail_fast_skips_remaining(registry, test_settings):
    dispatcher = ToolDispatcher(registry, settings=test_settings, max_concurrent=1)
    calls = [
        ToolCall(tool_name="calculator", arguments={}),
        ToolCall(tool_name="math/add", arguments={"a": 1, "b": 1}),
    ]

    results = await dispatcher.run_batch(calls, fail_fast=True)

    assert isinstance(results[0].error, ToolInputValidationError)
    assert isinstance(results[1].error, ToolExecutionError)
    assert "skipped" in str(results[1].error)


@pytest.mark.asyncio
async def test_run_with_retry_retries_transient_errors(test_settings):
    attempts = []

    def flaky() -> str:
        attempts.append(1)
        if len(attempts) < 2:
            raise httpx.ConnectError("connection refused")
        return "ok"

    dispatcher = build_dispatcher(test_settings, function_tool(flaky))

    result = await dispatcher.run_with_retry("test/flaky", {}, max_retries=3, retry_delay=0)

    assert result.unwrap() == "ok"
    assert len(attempts) == 2


@pytest.mark.asyncio
async def test_run_with_retry_skips_dangerous_tools(test_settings):
    attempts = []

    def send() -> str:
        attempts.append(1)
        raise httpx.ConnectError("connection refused")

    dispatcher = build_dispatcher(test_settings, function_tool(send, dangerous=True))

    result = await dispatcher.run_with_retry("test/send", {}, max_retries=3, retry_delay=0)

    assert not result.ok
    assert len(attempts) == 1


@pytest.mark.asyncio
async def test_run_with_retry_does_not_retry_validation_errors(dispatcher):
    result = await dispatcher.run_with_retry("calculator", {}, retry_delay=0)

    assert isinstance(result.error, ToolInputValidationError)


@pytest.mark.asyncio
async def test_cancellation_propagates(test_settings):
    started = asyncio.Event()

    async def wait_forever() -> None:
        started.set()
        await asyncio.sleep(60)

    dispatcher = build_dispatcher(test_settings, function_tool(wait_forever))
    task = asyncio.create_task(dispatcher.run("test/wait-forever", {}))
    await started.wait()

    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task


def test_result_serialization_includes_error_detail():
    from toolengine.models.schemas import ToolResult

    result = ToolResult(
        call_id="c1",
        tool_name="calculator",
        status=ToolCallStatus.FAILED,
        error=ToolNotFoundError("calculator"),
        stage=ExecutionStage.PENDING
    )

    data = result.model_dump(mode="json")
    assert "error" not in data
    assert data["error_detail"] == {"kind": "not_found", "tool_name": "calculator", "message": "Tool not found: calculator"}
