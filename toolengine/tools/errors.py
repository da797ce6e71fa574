"""
Error taxonomy for tool registration and execution.

Runtime errors (everything except the registration errors) are carried on
ToolResult.error rather than raised out of the dispatcher, so callers can
match on the error type to decide what to do next.
"""
import asyncio
from typing import Any

import httpx


class ToolError(Exception):
    """Base class for all tool errors."""

    kind: str = "tool_error"

    def __init__(self, message: str, tool_name: str | None = None) -> None:
        super().__init__(message)
        self.tool_name = tool_name

    @property
    def retryable(self) -> bool:
        """Whether repeating the same call could succeed."""
        return False

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "tool_name": self.tool_name, "message": str(self)}


class ToolNotFoundError(ToolError):
    """Requested tool name is absent from the registry."""

    kind = "not_found"
    __match_args__ = ("tool_name",)

    def __init__(self, tool_name: str) -> None:
        super().__init__(f"Tool not found: {tool_name}", tool_name)


class ToolkitNotFoundError(ToolError):
    """Requested namespace has no tools."""

    kind = "toolkit_not_found"
    __match_args__ = ("namespace",)

    def __init__(self, namespace: str) -> None:
        super().__init__(f"Toolkit not found: {namespace}")
        self.namespace = namespace

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "namespace": self.namespace, "message": str(self)}


class _SchemaViolation(ToolError):
    stage = ""

    def __init__(self, tool_name: str, issues: list[Any]) -> None:
        summary = "; ".join(f"{i.path or '<root>'}: {i.message}" for i in issues) or "invalid value"
        super().__init__(f"{self.stage.capitalize()} validation failed for tool '{tool_name}': {summary}", tool_name)
        self.issues = issues

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["issues"] = [issue.model_dump() for issue in self.issues]
        return data


class ToolInputValidationError(_SchemaViolation):
    """Raw input failed the declared input schema. Nothing was executed."""

    kind = "input_validation"
    stage = "input"
    __match_args__ = ("tool_name", "issues")


class ToolOutputValidationError(_SchemaViolation):
    """Execution returned a value that fails the declared output schema."""

    kind = "output_validation"
    stage = "output"
    __match_args__ = ("tool_name", "issues")


class ToolExecutionError(ToolError):
    """The implementation itself failed."""

    kind = "execution"
    __match_args__ = ("tool_name", "cause")

    def __init__(self, tool_name: str, cause: BaseException | str, input: Any = None) -> None:
        super().__init__(f"Tool '{tool_name}' execution failed: {_describe(cause)}", tool_name)
        self.cause = cause
        self.input = input
        if isinstance(cause, BaseException):
            self.__cause__ = cause

    @property
    def retryable(self) -> bool:
        cause = self.cause
        if isinstance(cause, httpx.HTTPStatusError):
            status = cause.response.status_code
            return status == 429 or status >= 500
        return isinstance(cause, (httpx.TransportError, asyncio.TimeoutError, TimeoutError))

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["retryable"] = self.retryable
        return data


class ToolRegistrationConflictError(ToolError):
    """A name was registered twice while overrides were disabled."""

    kind = "registration_conflict"

    def __init__(self, name: str, source: str | None = None) -> None:
        where = f" ({source})" if source else ""
        super().__init__(f"Tool already registered: {name}{where}", name)


class InvalidToolNameError(ValueError):
    """A tool or namespace name does not match the naming rules."""
    pass


def _describe(cause: BaseException | str) -> str:
    if isinstance(cause, str):
        return cause
    if isinstance(cause, httpx.HTTPStatusError):
        return f"HTTP {cause.response.status_code} from {cause.request.url}"
    text = str(cause)
    return f"{type(cause).__name__}: {text}" if text else type(cause).__name__
