"""
Toolbox and workspace builders.

Builders are build-time only: they accumulate tools and hand out immutable
snapshots that the registry merger consumes once.
"""
import logging
from types import MappingProxyType
from typing import Iterable, Mapping

from toolengine.models.schemas import ToolkitMetadata
from toolengine.tools.base import Tool, validate_simple_name
from toolengine.tools.errors import ToolRegistrationConflictError

logger = logging.getLogger(__name__)


class Toolbox:
    """Read-only set of tools belonging to one namespace."""

    __slots__ = ("_namespace", "_tools", "_metadata")

    def __init__(
        self,
        namespace: str,
        tools: Mapping[str, Tool],
        metadata: ToolkitMetadata | None = None
    ) -> None:
        self._namespace = namespace
        self._tools = MappingProxyType(dict(tools))
        self._metadata = metadata

    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def tools(self) -> Mapping[str, Tool]:
        return self._tools

    @property
    def metadata(self) -> ToolkitMetadata | None:
        """Explicitly declared toolkit metadata, if any."""
        return self._metadata

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __repr__(self) -> str:
        return f"Toolbox(namespace={self._namespace}, tools={len(self._tools)})"


Workspace = Mapping[str, Toolbox]


class ToolboxBuilder:
    """
    Accumulates tools for one namespace.

    Re-adding a name replaces the earlier tool and logs a warning, unless
    the builder was created with allow_override=False.
    """

    def __init__(self, namespace: str, allow_override: bool = True) -> None:
        self.namespace = namespace
        self.allow_override = allow_override
        self._tools: dict[str, Tool] = {}
        self._metadata: ToolkitMetadata | None = None

    def add_tool(self, tool: Tool) -> "ToolboxBuilder":
        """
        Add a tool under its simple name.

        Args:
            tool: Tool to add

        Returns:
            This builder, for chaining

        Raises:
            InvalidToolNameError: If the tool name is empty or malformed
            ToolRegistrationConflictError: If the name exists and overrides are disabled
        """
        name = validate_simple_name(tool.definition.name)

        if name in self._tools:
            if not self.allow_override:
                raise ToolRegistrationConflictError(name, source=f"toolbox {self.namespace}")
            logger.warning(f"Tool '{name}' already in toolbox '{self.namespace}', overwriting")

        self._tools[name] = tool
        logger.debug(f"Added tool '{name}' to toolbox '{self.namespace}'")
        return self

    def add_tools(self, tools: Iterable[Tool]) -> "ToolboxBuilder":
        for item in tools:
            self.add_tool(item)
        return self

    def with_metadata(
        self,
        description: str = "",
        version: str = "0.0.1",
        author: str | None = None
    ) -> "ToolboxBuilder":
        """Declare toolkit-level metadata for this namespace."""
        self._metadata = ToolkitMetadata(
            name=self.namespace,
            description=description,
            version=version,
            author=author
        )
        return self

    def build(self) -> Toolbox:
        return Toolbox(self.namespace, self._tools, self._metadata)

    def __len__(self) -> int:
        return len(self._tools)


class WorkspaceBuilder:
    """Aggregates one toolbox builder per namespace."""

    def __init__(self, allow_override: bool = True) -> None:
        self.allow_override = allow_override
        self._toolboxes: dict[str, ToolboxBuilder] = {}

    def toolbox(self, namespace: str) -> ToolboxBuilder:
        """
        Get the builder for a namespace, creating it on first access.

        Raises:
            InvalidToolNameError: If the namespace name is malformed
        """
        builder = self._toolboxes.get(namespace)
        if builder is None:
            validate_simple_name(namespace, what="namespace")
            builder = ToolboxBuilder(namespace, allow_override=self.allow_override)
            self._toolboxes[namespace] = builder
        return builder

    def namespaces(self) -> list[str]:
        return list(self._toolboxes)

    def build(self) -> Workspace:
        return MappingProxyType({
            namespace: builder.build()
            for namespace, builder in self._toolboxes.items()
        })
