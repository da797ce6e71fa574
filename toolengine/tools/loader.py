"""
Declarative toolkit definitions.

A toolkit file is JSON shaped like ToolkitFile:

    {
        "name": "todos",
        "description": "Todo list API",
        "version": "1.0.0",
        "tools": {
            "get-todo": {
                "metadata": {"description": "Fetch a todo by id"},
                "implementation": {
                    "kind": "http",
                    "url": "https://api.example.com/todos/{id}",
                    "input_schema": {"type": "object", "required": ["id"]}
                }
            }
        }
    }

Schemas are JSON Schema documents; native handlers are import paths.
"""
import importlib
import logging
from pathlib import Path
from typing import Callable

from toolengine.models.schemas import (
    HttpImplementationSpec,
    NativeImplementationSpec,
    RemoteImplementationSpec,
    ToolkitFile,
    ToolSpec,
)
from toolengine.tools.base import (
    HttpEndpoint,
    NativeFunction,
    RemoteProcedure,
    Tool,
    ToolDefinition,
    validate_simple_name,
)
from toolengine.tools.builders import Toolbox, ToolboxBuilder, WorkspaceBuilder

logger = logging.getLogger(__name__)


def load_toolkit_file(path: str | Path) -> ToolkitFile:
    """
    Read and validate a toolkit definition file.

    Args:
        path: Path to a JSON toolkit file

    Returns:
        ToolkitFile: Validated definition

    Raises:
        FileNotFoundError: If the file does not exist
        pydantic.ValidationError: If the content does not match ToolkitFile
    """
    path = Path(path)
    definition = ToolkitFile.model_validate_json(path.read_text(encoding="utf-8"))
    logger.info(f"Loaded toolkit '{definition.name}' with {len(definition.tools)} tools from {path}")
    return definition


def import_handler(path: str) -> Callable:
    """
    Resolve a 'package.module:function' path to a callable.

    Raises:
        ValueError: If the module or attribute cannot be found or is not callable
    """
    module_name, _, attr = path.partition(":")
    try:
        module = importlib.import_module(module_name)
        handler = getattr(module, attr)
    except (ImportError, AttributeError) as e:
        raise ValueError(f"Cannot import handler '{path}': {e}") from e
    if not callable(handler):
        raise ValueError(f"Handler '{path}' is not callable")
    return handler


def tool_from_spec(name: str, spec: ToolSpec) -> Tool:
    """Build a Tool from one toolkit file entry."""
    impl = spec.implementation
    schemas = {"input_schema": impl.input_schema, "output_schema": impl.output_schema}

    match impl:
        case NativeImplementationSpec():
            implementation = NativeFunction(execute=import_handler(impl.handler), **schemas)
        case HttpImplementationSpec():
            implementation = HttpEndpoint(
                url=impl.url,
                method=impl.method,
                headers=impl.headers,
                timeout=impl.timeout,
                **schemas
            )
        case RemoteImplementationSpec():
            implementation = RemoteProcedure(slug=impl.slug, version=impl.version, **schemas)
        case _:
            raise ValueError(f"Unsupported implementation kind for tool '{name}'")

    meta = spec.metadata
    return Tool(
        definition=ToolDefinition(
            name=name,
            description=meta.description,
            version=meta.version,
            author=meta.author,
            tags=tuple(meta.tags),
            examples=tuple(meta.examples),
            timeout=meta.timeout,
            dangerous=meta.dangerous
        ),
        implementation=implementation
    )


def _populate(builder: ToolboxBuilder, definition: ToolkitFile) -> ToolboxBuilder:
    for name, spec in definition.tools.items():
        builder.add_tool(tool_from_spec(name, spec))
    return builder.with_metadata(
        description=definition.description,
        version=definition.version,
        author=definition.author
    )


def toolkit_from_definition(definition: ToolkitFile, allow_override: bool = True) -> Toolbox:
    """
    Turn a toolkit definition into a Toolbox named after the toolkit.

    Raises:
        InvalidToolNameError: If the toolkit or a tool name is malformed
        ValueError: If a native handler cannot be imported
    """
    namespace = validate_simple_name(definition.name, what="namespace")
    return _populate(ToolboxBuilder(namespace, allow_override=allow_override), definition).build()


def register_toolkit(workspace: WorkspaceBuilder, definition: ToolkitFile) -> ToolboxBuilder:
    """
    Add a toolkit definition to a workspace under the toolkit name.

    Args:
        workspace: Workspace builder to extend
        definition: Toolkit definition

    Returns:
        The namespace's toolbox builder
    """
    builder = _populate(workspace.toolbox(definition.name), definition)
    logger.debug(f"Registered toolkit '{definition.name}' in workspace")
    return builder
