"""
Tool dispatcher module for the tool engine.
Looks tools up, validates input, executes and validates output.
"""
import asyncio
import json
import logging
import time
from typing import Any, Awaitable, Iterable, Sequence

import httpx

from toolengine.config import Settings, get_settings
from toolengine.core.state_machine import ExecutionStateMachine
from toolengine.models.schemas import ExecutionStage, ToolCall, ToolCallStatus, ToolResult
from toolengine.tools.base import HttpEndpoint, NativeFunction, RemoteProcedure, Tool
from toolengine.tools.errors import (
    ToolError,
    ToolExecutionError,
    ToolInputValidationError,
    ToolNotFoundError,
    ToolOutputValidationError,
)
from toolengine.tools.executors import HttpExecutor, RemoteExecutor, execute_native
from toolengine.tools.registry import Toolkit, ToolRegistry
from toolengine.tools.remote import RemoteServiceResolver
from toolengine.tools.validation import ValidationIssue, validate

logger = logging.getLogger(__name__)


class ToolDispatcher:
    """
    Routes tool calls to the strategy of their implementation kind.

    run() never raises the tool error taxonomy: every failure comes back as
    a ToolResult carrying the typed error. There is no automatic retry;
    run_with_retry() is an explicit caller-side policy.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        http_client: httpx.AsyncClient | None = None,
        resolver: RemoteServiceResolver | None = None,
        allowed_tools: Iterable[str] | None = None,
        settings: Settings | None = None,
        max_concurrent: int | None = None
    ) -> None:
        """
        Initialize tool dispatcher.

        Args:
            registry: Registry to resolve tool names against
            http_client: Client for HTTP tools (created lazily if omitted)
            resolver: Resolver for remote procedure tools
            allowed_tools: Full names or namespace/* patterns allowed to run; None allows all
            settings: Engine settings
            max_concurrent: Maximum concurrent calls in run_batch
        """
        self.registry = registry
        self.settings = settings or get_settings()
        self.max_concurrent = max_concurrent or self.settings.max_concurrent

        if allowed_tools is None:
            allowed_tools = self.settings.allowed_tools
        self.allowed_tools = frozenset(allowed_tools) if allowed_tools is not None else None

        self._http = HttpExecutor(http_client, self.settings)
        self._remote = RemoteExecutor(resolver)

        logger.info(
            f"ToolDispatcher initialized: tools={len(registry)}, "
            f"max_concurrent={self.max_concurrent}"
        )

    async def close(self) -> None:
        await self._http.close()

    async def run(self, full_name: str, raw_input: Any, *, call_id: str | None = None) -> ToolResult:
        """
        Run a tool by fully qualified name.

        Args:
            full_name: Fully qualified tool name
            raw_input: Unvalidated input
            call_id: Optional call identifier

        Returns:
            ToolResult: output on success, typed error on failure
        """
        machine = ExecutionStateMachine(full_name)
        started = time.perf_counter()

        try:
            found = self.registry.get_tool(full_name)
        except ToolNotFoundError as e:
            logger.warning(f"Tool lookup failed: {full_name}")
            return self._finish(machine, started, call_id, error=e)

        machine.transition(ExecutionStage.LOOKED_UP)
        return await self._pipeline(full_name, found, raw_input, machine, started, call_id)

    async def invoke(
        self,
        full_name: str,
        tool: Tool,
        raw_input: Any,
        call_id: str | None = None
    ) -> ToolResult:
        """Run an already looked-up tool through the rest of the pipeline."""
        machine = ExecutionStateMachine(full_name)
        machine.transition(ExecutionStage.LOOKED_UP)
        return await self._pipeline(full_name, tool, raw_input, machine, time.perf_counter(), call_id)

    async def execute(self, tool_call: ToolCall) -> ToolResult:
        """
        Run a tool call coming from a function-calling model.

        String arguments are decoded as JSON first; malformed JSON is
        reported as an input validation error once the tool is found and
        allowed.
        """
        arguments = tool_call.arguments
        if isinstance(arguments, str):
            try:
                arguments = json.loads(arguments) if arguments.strip() else {}
            except json.JSONDecodeError as e:
                name = tool_call.tool_name
                if not self.registry.has_tool(name) or not self.is_allowed(name):
                    return await self.run(name, {}, call_id=tool_call.call_id)
                machine = ExecutionStateMachine(name)
                machine.transition(ExecutionStage.LOOKED_UP)
                error = ToolInputValidationError(name, [
                    ValidationIssue(message=f"arguments are not valid JSON: {e.msg}", type="json_invalid")
                ])
                return self._finish(machine, time.perf_counter(), tool_call.call_id, error=error)

        return await self.run(tool_call.tool_name, arguments, call_id=tool_call.call_id)

    async def _pipeline(
        self,
        full_name: str,
        tool: Tool,
        raw_input: Any,
        machine: ExecutionStateMachine,
        started: float,
        call_id: str | None
    ) -> ToolResult:
        impl = tool.implementation

        if not self.is_allowed(full_name):
            logger.warning(f"Permission denied for tool: {full_name}")
            error = ToolExecutionError(full_name, "permission denied", input=raw_input)
            return self._finish(machine, started, call_id, error=error)

        checked = validate(getattr(impl, "input_schema", Any), raw_input)
        if not checked.ok:
            error = ToolInputValidationError(full_name, checked.issues)
            logger.warning(f"Tool input validation failed: {error}")
            return self._finish(machine, started, call_id, error=error)
        machine.transition(ExecutionStage.INPUT_VALIDATED)

        machine.transition(ExecutionStage.EXECUTING)
        logger.info(f"Executing tool: {full_name}")
        call = self._start(impl, checked.value)
        if call is None:
            error = ToolExecutionError(
                full_name,
                f"unsupported implementation: {type(impl).__name__}",
                input=checked.value
            )
            logger.error(f"Tool {full_name} execution error: {error}")
            return self._finish(machine, started, call_id, error=error)

        try:
            timeout = tool.definition.timeout
            if timeout is not None:
                raw_output = await asyncio.wait_for(call, timeout=timeout)
            else:
                raw_output = await call
        except Exception as e:
            error = ToolExecutionError(full_name, e, input=checked.value)
            logger.error(f"Tool {full_name} execution error: {error}")
            return self._finish(machine, started, call_id, error=error)

        produced = validate(getattr(impl, "output_schema", Any), raw_output)
        if not produced.ok:
            error = ToolOutputValidationError(full_name, produced.issues)
            logger.warning(f"Tool output validation failed: {error}")
            return self._finish(machine, started, call_id, error=error)
        machine.transition(ExecutionStage.OUTPUT_VALIDATED)

        machine.transition(ExecutionStage.DONE)
        result = self._finish(machine, started, call_id, output=produced.value)
        logger.info(f"Tool {full_name} completed successfully (time={result.execution_time:.2f}s)")
        return result

    def _start(self, impl: Any, value: Any) -> Awaitable[Any] | None:
        """Pick the execution strategy; None for an unknown implementation kind."""
        match impl:
            case NativeFunction():
                return execute_native(impl, value)
            case HttpEndpoint():
                return self._http.execute(impl, value)
            case RemoteProcedure():
                return self._remote.execute(impl, value)
            case _:
                return None

    def is_allowed(self, full_name: str) -> bool:
        """Check a name against allowed_tools (exact names or namespace/* patterns)."""
        if self.allowed_tools is None:
            return True
        if full_name in self.allowed_tools:
            return True
        return any(
            pattern.endswith("/*") and full_name.startswith(pattern[:-1])
            for pattern in self.allowed_tools
        )

    def _finish(
        self,
        machine: ExecutionStateMachine,
        started: float,
        call_id: str | None,
        output: Any = None,
        error: ToolError | None = None
    ) -> ToolResult:
        if error is not None and not machine.is_terminal():
            machine.fail()

        extra = {"call_id": call_id} if call_id else {}
        return ToolResult(
            tool_name=machine.tool_name,
            status=ToolCallStatus.FAILED if error is not None else ToolCallStatus.SUCCESS,
            output=output,
            error=error,
            stage=machine.last_active_stage,
            execution_time=time.perf_counter() - started,
            **extra
        )

    async def run_batch(self, calls: Sequence[ToolCall], fail_fast: bool = False) -> list[ToolResult]:
        """
        Run several tool calls concurrently.

        Args:
            calls: Tool calls
            fail_fast: If True, calls not yet started after a failure are skipped

        Returns:
            List of tool results in the same order as calls
        """
        if not calls:
            return []

        semaphore = asyncio.Semaphore(self.max_concurrent)
        failed = asyncio.Event()

        async def worker(call: ToolCall) -> ToolResult:
            async with semaphore:
                if fail_fast and failed.is_set():
                    machine = ExecutionStateMachine(call.tool_name)
                    error = ToolExecutionError(call.tool_name, "skipped after an earlier failure in the batch")
                    return self._finish(machine, time.perf_counter(), call.call_id, error=error)
                result = await self.execute(call)
                if not result.ok:
                    failed.set()
                return result

        return list(await asyncio.gather(*(worker(call) for call in calls)))

    async def run_with_retry(
        self,
        full_name: str,
        raw_input: Any,
        max_retries: int = 3,
        retry_delay: float = 1.0
    ) -> ToolResult:
        """
        Run with retries on retryable failures.

        Only errors flagged retryable are retried, and never for tools
        marked dangerous.

        Args:
            full_name: Fully qualified tool name
            raw_input: Unvalidated input
            max_retries: Maximum attempts
            retry_delay: Base delay between attempts, grows linearly

        Returns:
            ToolResult: Final result
        """
        found = self.registry.get(full_name)
        dangerous = found is not None and found.definition.dangerous

        result = await self.run(full_name, raw_input)
        for attempt in range(1, max_retries):
            if result.ok or dangerous or not result.error.retryable:
                break
            logger.warning(
                f"Tool {full_name} failed (attempt {attempt}), "
                f"retrying in {retry_delay * attempt}s"
            )
            await asyncio.sleep(retry_delay * attempt)
            result = await self.run(full_name, raw_input)

        return result

    def get_toolkit(self, namespace: str) -> Toolkit:
        """Get a toolkit whose tools execute through this dispatcher."""
        return self.registry.get_toolkit(namespace, runner=self)

    def __repr__(self) -> str:
        return f"ToolDispatcher(tools={len(self.registry)})"
