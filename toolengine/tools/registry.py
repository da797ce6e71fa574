"""
Tool registry module for the tool engine.

Merges the Internal (stdlib), Organization and Project tiers into one flat,
read-only RegistryData keyed by fully qualified name, and exposes lookups
over it.
"""
import logging
from enum import IntEnum
from types import MappingProxyType
from typing import Any, Mapping, Protocol

from toolengine.config import Settings, get_settings
from toolengine.models.schemas import ToolkitMetadata, ToolResult
from toolengine.tools.base import Tool, qualify, split_full_name
from toolengine.tools.builders import Toolbox, Workspace
from toolengine.tools.errors import (
    ToolkitNotFoundError,
    ToolNotFoundError,
    ToolRegistrationConflictError,
)
from toolengine.tools.validation import json_schema

logger = logging.getLogger(__name__)

# Key under which the un-namespaced internal tools keep their toolkit metadata.
INTERNAL_NAMESPACE = ""


class RegistryTier(IntEnum):
    """Registry sources in increasing precedence."""
    INTERNAL = 0
    ORGANIZATION = 1
    PROJECT = 2


class RegistryData:
    """Flat, read-only map of fully qualified name to tool."""

    __slots__ = ("_tools", "_toolkits", "_tiers")

    def __init__(
        self,
        tools: Mapping[str, Tool],
        toolkits: Mapping[str, ToolkitMetadata] | None = None,
        tiers: Mapping[str, RegistryTier] | None = None
    ) -> None:
        self._tools = MappingProxyType(dict(tools))
        self._toolkits = MappingProxyType(dict(toolkits or {}))
        self._tiers = MappingProxyType(dict(tiers or {}))

    @property
    def tools(self) -> Mapping[str, Tool]:
        return self._tools

    @property
    def toolkits(self) -> Mapping[str, ToolkitMetadata]:
        """Explicitly declared toolkit metadata by namespace."""
        return self._toolkits

    def tier_of(self, full_name: str) -> RegistryTier | None:
        return self._tiers.get(full_name)

    def __len__(self) -> int:
        return len(self._tools)

    def __repr__(self) -> str:
        return f"RegistryData(tools={len(self._tools)}, toolkits={len(self._toolkits)})"


class RegistryMerger:
    """
    Combines registry sources into one RegistryData.

    Sources are applied from lowest to highest tier. A full name seen again
    in a later source is replaced and a warning is logged; with
    allow_override=False a ToolRegistrationConflictError is raised instead.
    """

    def __init__(self, allow_override: bool = True) -> None:
        self.allow_override = allow_override
        self._sources: list[tuple[RegistryTier, Mapping[str, Tool], Mapping[str, ToolkitMetadata]]] = []
        self._merged = False

    def add_source(
        self,
        tier: RegistryTier,
        entries: Mapping[str, Tool],
        toolkits: Mapping[str, ToolkitMetadata] | None = None
    ) -> "RegistryMerger":
        """
        Add pre-qualified entries for a tier.

        Args:
            tier: Precedence tier of the entries
            entries: Fully qualified name to tool
            toolkits: Declared toolkit metadata by namespace

        Returns:
            This merger, for chaining
        """
        self._sources.append((tier, entries, toolkits or {}))
        return self

    def add_internal(self, toolbox: Toolbox) -> "RegistryMerger":
        toolkits = {INTERNAL_NAMESPACE: toolbox.metadata} if toolbox.metadata else {}
        return self.add_source(RegistryTier.INTERNAL, dict(toolbox.tools), toolkits)

    def add_organizations(self, organizations: Mapping[str, Workspace]) -> "RegistryMerger":
        entries: dict[str, Tool] = {}
        toolkits: dict[str, ToolkitMetadata] = {}
        for org, workspace in organizations.items():
            for namespace, toolbox in workspace.items():
                qualified_ns = qualify(org, namespace)
                entries.update(_qualified(qualified_ns, toolbox))
                if toolbox.metadata:
                    toolkits[qualified_ns] = toolbox.metadata
        return self.add_source(RegistryTier.ORGANIZATION, entries, toolkits)

    def add_project(self, workspace: Workspace) -> "RegistryMerger":
        entries: dict[str, Tool] = {}
        toolkits: dict[str, ToolkitMetadata] = {}
        for namespace, toolbox in workspace.items():
            entries.update(_qualified(namespace, toolbox))
            if toolbox.metadata:
                toolkits[namespace] = toolbox.metadata
        return self.add_source(RegistryTier.PROJECT, entries, toolkits)

    def merge(self) -> RegistryData:
        """
        Produce the merged registry. Runs once per merger.

        Raises:
            ToolRegistrationConflictError: On a duplicate name with overrides disabled
            RuntimeError: If called twice
        """
        if self._merged:
            raise RuntimeError("RegistryMerger.merge() already ran; create a new merger to rebuild")
        self._merged = True

        tools: dict[str, Tool] = {}
        tiers: dict[str, RegistryTier] = {}
        toolkits: dict[str, ToolkitMetadata] = {}
        internal_names: set[str] = set()

        for tier, entries, declared in sorted(self._sources, key=lambda source: source[0]):
            for full_name, entry in entries.items():
                if full_name in tools:
                    previous = tiers[full_name]
                    if not self.allow_override:
                        raise ToolRegistrationConflictError(
                            full_name, source=f"{tier.name.lower()} over {previous.name.lower()}"
                        )
                    logger.warning(
                        f"Tool '{full_name}' from {tier.name.lower()} tier overrides "
                        f"the {previous.name.lower()} definition"
                    )
                elif tier is not RegistryTier.INTERNAL:
                    _, simple = split_full_name(full_name)
                    if simple in internal_names:
                        logger.warning(
                            f"Tool '{full_name}' from {tier.name.lower()} tier shadows "
                            f"internal tool '{simple}'"
                        )

                tools[full_name] = entry
                tiers[full_name] = tier
                if tier is RegistryTier.INTERNAL:
                    internal_names.add(full_name)

            toolkits.update(declared)

        data = RegistryData(tools, toolkits, tiers)
        logger.info(f"Merged tool registry: {len(data)} tools from {len(self._sources)} sources")
        return data


def _qualified(namespace: str, toolbox: Toolbox) -> dict[str, Tool]:
    return {qualify(namespace, name): entry for name, entry in toolbox.tools.items()}


def merge_registry(
    internal: Toolbox | None = None,
    project: Workspace | None = None,
    organizations: Mapping[str, Workspace] | None = None,
    allow_override: bool = True
) -> RegistryData:
    """
    Merge the three tiers into a RegistryData.

    Args:
        internal: Stdlib toolbox, inserted under simple names
        project: Project workspace, inserted as namespace/name
        organizations: Organization workspaces by org, inserted as org/namespace/name
        allow_override: Replace duplicates with a warning instead of failing

    Returns:
        RegistryData
    """
    merger = RegistryMerger(allow_override=allow_override)
    if internal is not None:
        merger.add_internal(internal)
    if organizations:
        merger.add_organizations(organizations)
    if project is not None:
        merger.add_project(project)
    return merger.merge()


class ToolRunner(Protocol):
    async def invoke(self, full_name: str, tool: Tool, raw_input: Any, call_id: str | None = None) -> ToolResult:
        ...


class ExecutableTool:
    """A registered tool bound to an execution pipeline."""

    def __init__(
        self,
        full_name: str,
        tool: Tool,
        registry: "ToolRegistry",
        runner: ToolRunner | None = None
    ) -> None:
        self.full_name = full_name
        self.tool = tool
        self._registry = registry
        self._runner = runner

    @property
    def definition(self):
        return self.tool.definition

    @property
    def name(self) -> str:
        return self.tool.definition.name

    @property
    def description(self) -> str:
        return self.tool.definition.description

    async def execute(self, raw_input: Any) -> ToolResult:
        """
        Run this tool through the full validate/execute/validate pipeline.

        Without a bound runner a short-lived dispatcher is used.
        """
        if self._runner is not None:
            return await self._runner.invoke(self.full_name, self.tool, raw_input)

        from toolengine.tools.dispatcher import ToolDispatcher

        dispatcher = ToolDispatcher(self._registry, settings=self._registry.settings)
        try:
            return await dispatcher.invoke(self.full_name, self.tool, raw_input)
        finally:
            await dispatcher.close()

    def __repr__(self) -> str:
        return f"ExecutableTool(name={self.full_name})"


class Toolkit:
    """All tools of one namespace, ready to execute."""

    def __init__(
        self,
        metadata: ToolkitMetadata,
        tools: Mapping[str, ExecutableTool],
        metadata_source: str
    ) -> None:
        self.metadata = metadata
        self.tools = MappingProxyType(dict(tools))
        self.metadata_source = metadata_source

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def description(self) -> str:
        return self.metadata.description

    @property
    def version(self) -> str:
        return self.metadata.version

    @property
    def author(self) -> str | None:
        return self.metadata.author

    def get(self, name: str) -> ExecutableTool:
        found = self.tools.get(name)
        if found is None:
            raise ToolNotFoundError(qualify(self.name, name))
        return found

    def __len__(self) -> int:
        return len(self.tools)

    def __repr__(self) -> str:
        return f"Toolkit(name={self.name}, tools={len(self.tools)})"


class ToolRegistry:
    """
    Read API over a merged RegistryData.

    Instances hold no mutable state and are safe to share across
    concurrent calls.
    """

    def __init__(self, data: RegistryData, settings: Settings | None = None) -> None:
        self._data = data
        self._settings = settings or get_settings()
        logger.info(f"ToolRegistry initialized with {len(data)} tools")

    @property
    def data(self) -> RegistryData:
        return self._data

    @property
    def settings(self) -> Settings:
        return self._settings

    def get_tool(self, full_name: str) -> Tool:
        """
        Get a tool by fully qualified name.

        Raises:
            ToolNotFoundError: If no tool is registered under the name
        """
        found = self._data.tools.get(full_name)
        if found is None:
            raise ToolNotFoundError(full_name)
        return found

    def get(self, full_name: str) -> Tool | None:
        return self._data.tools.get(full_name)

    def has_tool(self, full_name: str) -> bool:
        return full_name in self._data.tools

    def list_tools(self) -> list[str]:
        return sorted(self._data.tools)

    def list_toolkits(self) -> list[str]:
        namespaces = {self._toolkit_name(full_name) for full_name in self._data.tools}
        return sorted(namespaces)

    def _toolkit_name(self, full_name: str) -> str:
        namespace, _ = split_full_name(full_name)
        return namespace if namespace is not None else self._settings.internal_toolkit_name

    def _namespace_tools(self, namespace: str) -> dict[str, tuple[str, Tool]]:
        found: dict[str, tuple[str, Tool]] = {}
        for full_name, entry in self._data.tools.items():
            if self._toolkit_name(full_name) == namespace:
                _, simple = split_full_name(full_name)
                found[simple] = (full_name, entry)
        return found

    def toolkit_metadata(self, namespace: str) -> tuple[ToolkitMetadata, str]:
        """
        Resolve metadata for a toolkit.

        Declared metadata wins. Otherwise the toolkit_metadata_fallback
        setting decides: "first_tool" copies description, version and author
        from the first registered tool of the namespace (kept for
        compatibility, not a stable contract), "defaults" uses placeholders.

        Returns:
            Tuple of (metadata, source) where source is declared, first_tool or defaults

        Raises:
            ToolkitNotFoundError: If the namespace has no tools
        """
        members = self._namespace_tools(namespace)
        if not members:
            raise ToolkitNotFoundError(namespace)

        key = INTERNAL_NAMESPACE if namespace == self._settings.internal_toolkit_name else namespace
        declared = self._data.toolkits.get(key)
        if declared is not None:
            return declared.model_copy(update={"name": namespace}), "declared"

        if self._settings.toolkit_metadata_fallback == "first_tool":
            _, first = next(iter(members.values()))
            logger.debug(f"Toolkit '{namespace}' has no metadata, using first tool '{first.name}'")
            return ToolkitMetadata(
                name=namespace,
                description=first.definition.description,
                version=first.definition.version or "0.0.1",
                author=first.definition.author
            ), "first_tool"

        return ToolkitMetadata(name=namespace, author="system"), "defaults"

    def get_toolkit(self, namespace: str, runner: ToolRunner | None = None) -> Toolkit:
        """
        Get all tools of a namespace as executable tools.

        Args:
            namespace: Toolkit name; the internal tools use internal_toolkit_name
            runner: Pipeline used by ExecutableTool.execute

        Returns:
            Toolkit

        Raises:
            ToolkitNotFoundError: If the namespace has no tools
        """
        metadata, source = self.toolkit_metadata(namespace)
        tools = {
            simple: ExecutableTool(full_name, entry, self, runner)
            for simple, (full_name, entry) in self._namespace_tools(namespace).items()
        }
        return Toolkit(metadata, tools, source)

    def get_schema(self, full_name: str) -> dict[str, Any]:
        """
        Get a function-calling descriptor for a tool.

        Raises:
            ToolNotFoundError: If the tool does not exist
        """
        entry = self.get_tool(full_name)
        input_schema = getattr(entry.implementation, "input_schema", {})
        output_schema = getattr(entry.implementation, "output_schema", {})
        return {
            "name": full_name,
            "description": entry.definition.description,
            "parameters": json_schema(input_schema),
            "returns": json_schema(output_schema),
            "dangerous": entry.definition.dangerous
        }

    def get_schemas(self) -> list[dict[str, Any]]:
        return [self.get_schema(full_name) for full_name in self.list_tools()]

    def describe_tools(self) -> str:
        """
        Get formatted description of all tools.

        Returns:
            Formatted string describing all tools
        """
        lines = []

        for full_name in self.list_tools():
            schema = self.get_schema(full_name)
            lines.append(f"\n### {full_name}")
            lines.append(f"Description: {schema['description']}")

            params = schema["parameters"].get("properties", {})
            required = set(schema["parameters"].get("required", []))
            if params:
                lines.append("Parameters:")
                for name, prop in params.items():
                    marker = " (required)" if name in required else ""
                    lines.append(f"  - {name}: {prop.get('type', 'any')}{marker}")
                    if prop.get("description"):
                        lines.append(f"    {prop['description']}")

        return "\n".join(lines)

    def __contains__(self, full_name: object) -> bool:
        return full_name in self._data.tools

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"ToolRegistry(tools={len(self._data)})"
