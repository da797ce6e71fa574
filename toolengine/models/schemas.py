"""
Data models and schemas for the tool engine.
Defines Pydantic models for tool calls, results, toolkit definition files and API payloads.
"""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ToolCallStatus(str, Enum):
    """Outcome of a tool call."""
    SUCCESS = "success"
    FAILED = "failed"


class ExecutionStage(str, Enum):
    """Stages a single tool call moves through."""
    PENDING = "pending"
    LOOKED_UP = "looked_up"
    INPUT_VALIDATED = "input_validated"
    EXECUTING = "executing"
    OUTPUT_VALIDATED = "output_validated"
    DONE = "done"
    FAILED = "failed"


class ToolCall(BaseModel):
    """A tool call request as produced by a function-calling model."""
    tool_name: str = Field(..., min_length=1, description="Fully qualified name of the tool to call")
    arguments: dict[str, Any] | str = Field(
        default_factory=dict,
        description="Tool arguments, either decoded or as the raw JSON string"
    )
    call_id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Unique call identifier")


class ToolResult(BaseModel):
    """
    Result of a tool call.

    Failed calls carry the typed error in `error`; it is excluded from
    serialization and rendered through `error_detail` instead.
    """
    call_id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="ID of the corresponding tool call")
    tool_name: str = Field(..., description="Name of the called tool")
    status: ToolCallStatus = Field(..., description="Call status")
    output: Any = Field(default=None, description="Validated tool output")
    error: Any = Field(default=None, exclude=True, description="ToolError instance if failed")
    stage: ExecutionStage = Field(..., description="Last stage reached")
    execution_time: float = Field(default=0.0, description="Execution time in seconds")
    timestamp: datetime = Field(default_factory=_utcnow)

    @computed_field
    @property
    def error_detail(self) -> dict[str, Any] | None:
        return self.error.to_dict() if self.error is not None else None

    @property
    def ok(self) -> bool:
        return self.status == ToolCallStatus.SUCCESS

    def unwrap(self) -> Any:
        """Return the output, raising the carried error if the call failed."""
        if self.error is not None:
            raise self.error
        return self.output


class ToolkitMetadata(BaseModel):
    """Descriptive metadata for a namespace of tools."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Toolkit (namespace) name")
    description: str = Field(default="", description="Toolkit description")
    version: str = Field(default="0.0.1", description="Toolkit version")
    author: str | None = Field(default=None, description="Toolkit author")


# --- Declarative toolkit definition files ---

class ToolMetadataSpec(BaseModel):
    """Tool metadata as written in a toolkit file."""
    description: str = Field(..., description="Tool description")
    version: str | None = None
    author: str | None = None
    tags: list[str] = Field(default_factory=list)
    examples: list[dict[str, Any]] = Field(default_factory=list)
    timeout: float | None = Field(default=None, gt=0)
    dangerous: bool = False


class _ImplementationSpec(BaseModel):
    input_schema: dict[str, Any] = Field(default_factory=dict, description="JSON Schema of the input")
    output_schema: dict[str, Any] = Field(default_factory=dict, description="JSON Schema of the output")


class NativeImplementationSpec(_ImplementationSpec):
    kind: Literal["native"]
    handler: str = Field(..., description="Import path of the callable, as 'package.module:function'")

    @field_validator("handler")
    @classmethod
    def validate_handler(cls, v: str) -> str:
        module, sep, attr = v.partition(":")
        if not sep or not module or not attr:
            raise ValueError("Handler must look like 'package.module:function'")
        return v


class HttpImplementationSpec(_ImplementationSpec):
    kind: Literal["http"]
    url: str = Field(..., min_length=1)
    method: Literal["GET", "POST", "PUT", "DELETE", "PATCH"] = "GET"
    headers: dict[str, str] = Field(default_factory=dict)
    timeout: float | None = Field(default=None, gt=0)


class RemoteImplementationSpec(_ImplementationSpec):
    kind: Literal["remote"]
    slug: str = Field(..., min_length=1)
    version: str | None = None


ImplementationSpec = Annotated[
    Union[NativeImplementationSpec, HttpImplementationSpec, RemoteImplementationSpec],
    Field(discriminator="kind")
]


class ToolSpec(BaseModel):
    """One tool entry of a toolkit file."""
    metadata: ToolMetadataSpec
    implementation: ImplementationSpec


class ToolkitFile(BaseModel):
    """Declarative toolkit definition."""
    name: str = Field(..., min_length=1, description="Toolkit name, used as namespace")
    description: str = Field(default="", description="Toolkit description")
    version: str = Field(default="0.0.1", description="Toolkit version")
    author: str | None = None
    tools: dict[str, ToolSpec] = Field(default_factory=dict)


# --- API payloads ---

class RunToolRequest(BaseModel):
    """Request body for running a tool over HTTP."""
    input: Any = Field(default_factory=dict, description="Raw tool input")
    call_id: str | None = Field(default=None, description="Optional caller-supplied call ID")


class ToolListResponse(BaseModel):
    tools: list[str]
    count: int


class ToolkitResponse(BaseModel):
    """Toolkit description returned by the API."""
    name: str
    description: str
    version: str
    author: str | None = None
    tools: list[str] = Field(default_factory=list)
    metadata_source: str = Field(..., description="declared, first_tool or defaults")


class HealthCheckResponse(BaseModel):
    """Response model for health check endpoint."""
    status: str = Field(default="healthy", description="Service status")
    version: str = Field(..., description="Application version")
    timestamp: datetime = Field(default_factory=_utcnow)
    components: dict[str, str] = Field(default_factory=dict, description="Component statuses")


class ErrorResponse(BaseModel):
    """Standard error response model."""
    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Error message")
    details: dict[str, Any] | None = Field(default=None, description="Additional error details")
    timestamp: datetime = Field(default_factory=_utcnow)
