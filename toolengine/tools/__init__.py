"""
Tools package for the tool engine.
"""
from toolengine.tools.base import (
    NAME_SEPARATOR,
    HttpEndpoint,
    NativeFunction,
    RemoteProcedure,
    Tool,
    ToolDefinition,
    function_tool,
    tool,
)
from toolengine.tools.builders import (
    Toolbox,
    ToolboxBuilder,
    Workspace,
    WorkspaceBuilder,
)
from toolengine.tools.dispatcher import ToolDispatcher
from toolengine.tools.errors import (
    InvalidToolNameError,
    ToolError,
    ToolExecutionError,
    ToolInputValidationError,
    ToolkitNotFoundError,
    ToolNotFoundError,
    ToolOutputValidationError,
    ToolRegistrationConflictError,
)
from toolengine.tools.fanout import FanoutOutcome, bounded_gather
from toolengine.tools.loader import load_toolkit_file, register_toolkit, toolkit_from_definition
from toolengine.tools.registry import (
    RegistryData,
    RegistryMerger,
    RegistryTier,
    Toolkit,
    ToolRegistry,
    merge_registry,
)
from toolengine.tools.validation import ValidationIssue, ValidationOutcome, validate

__all__ = [
    "NAME_SEPARATOR",
    "HttpEndpoint",
    "NativeFunction",
    "RemoteProcedure",
    "Tool",
    "ToolDefinition",
    "function_tool",
    "tool",
    "Toolbox",
    "ToolboxBuilder",
    "Workspace",
    "WorkspaceBuilder",
    "ToolDispatcher",
    "InvalidToolNameError",
    "ToolError",
    "ToolExecutionError",
    "ToolInputValidationError",
    "ToolkitNotFoundError",
    "ToolNotFoundError",
    "ToolOutputValidationError",
    "ToolRegistrationConflictError",
    "FanoutOutcome",
    "bounded_gather",
    "load_toolkit_file",
    "register_toolkit",
    "toolkit_from_definition",
    "RegistryData",
    "RegistryMerger",
    "RegistryTier",
    "Toolkit",
    "ToolRegistry",
    "merge_registry",
    "ValidationIssue",
    "ValidationOutcome",
    "validate",
]
