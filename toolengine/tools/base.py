"""
Base tool module for the tool engine.
Defines tool naming rules, tool definitions and the three implementation kinds.
"""
import inspect
import re
from typing import Annotated, Any, Callable, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, create_model, field_validator

from toolengine.tools.errors import InvalidToolNameError

NAME_SEPARATOR = "/"
SIMPLE_NAME_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")

HttpMethod = Literal["GET", "POST", "PUT", "DELETE", "PATCH"]
MUTATING_METHODS = frozenset({"POST", "PUT", "PATCH"})


def validate_simple_name(name: str, what: str = "tool") -> str:
    """
    Check a simple tool or namespace name.

    Args:
        name: Name to check
        what: Label used in the error message

    Returns:
        The name unchanged

    Raises:
        InvalidToolNameError: If the name is empty or malformed
    """
    if not isinstance(name, str) or not name:
        raise InvalidToolNameError(f"{what.capitalize()} name must be a non-empty string")
    if not SIMPLE_NAME_PATTERN.match(name):
        raise InvalidToolNameError(
            f"Invalid {what} name '{name}': use lowercase letters, digits and single hyphens"
        )
    return name


def qualify(*parts: str) -> str:
    """Join name parts into a fully qualified name."""
    return NAME_SEPARATOR.join(part for part in parts if part)


def split_full_name(full_name: str) -> tuple[str | None, str]:
    """Split a fully qualified name into (namespace, simple name)."""
    namespace, sep, simple = full_name.rpartition(NAME_SEPARATOR)
    return (namespace if sep else None), simple


class ToolDefinition(BaseModel):
    """Immutable metadata describing a tool."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Simple tool name")
    description: str = Field(default="", description="What the tool does, shown to the agent")
    version: str | None = Field(default=None, description="Tool version")
    author: str | None = Field(default=None, description="Tool author")
    tags: tuple[str, ...] = Field(default=(), description="Tool tags")
    examples: tuple[dict[str, Any], ...] = Field(default=(), description="Usage examples")
    timeout: float | None = Field(default=None, gt=0, description="Execution time limit in seconds")
    dangerous: bool = Field(default=False, description="Whether tool has side effects")


class _Implementation(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    input_schema: Any = Field(default=Any, description="Schema the raw input must satisfy")
    output_schema: Any = Field(default=Any, description="Schema the raw output must satisfy")


class NativeFunction(_Implementation):
    """In-process callable, sync or async, receiving the validated input."""
    kind: Literal["native"] = "native"
    execute: Callable[[Any], Any]


class HttpEndpoint(_Implementation):
    """HTTP call with {param} placeholders in the URL template."""
    kind: Literal["http"] = "http"
    url: str = Field(..., min_length=1, description="URL template")
    method: HttpMethod = "GET"
    headers: dict[str, str] = Field(default_factory=dict)
    body_mapping: Callable[[dict[str, Any]], Any] | None = Field(
        default=None,
        description="Builds the request body from the input fields left after URL substitution"
    )
    timeout: float | None = Field(default=None, gt=0, description="Request timeout in seconds")

    @field_validator("method", mode="before")
    @classmethod
    def upper_method(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v


class RemoteProcedure(_Implementation):
    """Call into a service exposed by an external agent-protocol server."""
    kind: Literal["remote"] = "remote"
    slug: str = Field(..., min_length=1, description="Remote service slug")
    version: str | None = None


ToolImplementation = Annotated[
    Union[NativeFunction, HttpEndpoint, RemoteProcedure],
    Field(discriminator="kind")
]


class Tool(BaseModel):
    """A named capability: metadata plus an execution strategy."""

    model_config = ConfigDict(frozen=True)

    definition: ToolDefinition
    implementation: ToolImplementation

    @property
    def name(self) -> str:
        return self.definition.name

    def __repr__(self) -> str:
        kind = getattr(self.implementation, "kind", type(self.implementation).__name__)
        return f"Tool(name={self.definition.name}, kind={kind})"


def _input_model_from_signature(func: Callable, model_name: str) -> type[BaseModel]:
    """Build an input model from a function signature."""
    fields: dict[str, Any] = {}
    for name, param in inspect.signature(func).parameters.items():
        if name == "self":
            continue
        if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            raise ValueError(f"Cannot derive an input schema from *args/**kwargs of {func.__name__}")
        annotation = Any if param.annotation is inspect.Parameter.empty else param.annotation
        default = ... if param.default is inspect.Parameter.empty else param.default
        fields[name] = (annotation, default)
    return create_model(model_name, **fields)


def function_tool(
    func: Callable,
    name: str | None = None,
    description: str | None = None,
    output_schema: Any = Any,
    **metadata: Any
) -> Tool:
    """
    Wrap a plain function as a native tool.

    The input schema is derived from the function signature and the
    function is called with the validated fields as keyword arguments.

    Args:
        func: Function to wrap, sync or async
        name: Tool name (defaults to the function name with hyphens)
        description: Tool description (defaults to the docstring)
        output_schema: Schema of the return value
        **metadata: Extra ToolDefinition fields (version, tags, timeout, ...)

    Returns:
        Tool with a NativeFunction implementation
    """
    tool_name = validate_simple_name(name or func.__name__.replace("_", "-").lower())
    model_name = "".join(part.capitalize() for part in tool_name.split("-")) + "Input"
    input_model = _input_model_from_signature(func, model_name)

    if inspect.iscoroutinefunction(func):
        async def execute(params: BaseModel) -> Any:
            return await func(**dict(params))
    else:
        def execute(params: BaseModel) -> Any:
            return func(**dict(params))

    return Tool(
        definition=ToolDefinition(
            name=tool_name,
            description=description or inspect.getdoc(func) or "",
            **metadata
        ),
        implementation=NativeFunction(
            execute=execute,
            input_schema=input_model,
            output_schema=output_schema
        )
    )


def tool(
    name: str | None = None,
    description: str | None = None,
    output_schema: Any = Any,
    **metadata: Any
) -> Callable[[Callable], Tool]:
    """
    Decorator to create a native Tool from a function.

    Args:
        name: Tool name
        description: Tool description
        output_schema: Schema of the return value
        **metadata: Extra ToolDefinition fields

    Returns:
        Decorator function
    """
    def decorator(func: Callable) -> Tool:
        return function_tool(func, name=name, description=description, output_schema=output_schema, **metadata)
    return decorator
