"""Unit tests for registry merging and the read API."""

import logging

import pytest

from toolengine.tools.builders import ToolboxBuilder, WorkspaceBuilder
from toolengine.tools.errors import (
    ToolExecutionError,
    ToolkitNotFoundError,
    ToolNotFoundError,
    ToolRegistrationConflictError,
)
from toolengine.tools.registry import RegistryMerger, RegistryTier, ToolRegistry, merge_registry
from toolengine.tools.stdlib.calculator import build_calculator_tool


def test_project_tool_shadowing_internal_tool(make_tool, test_settings, caplog):
    """A project math/calculator coexists with the internal calculator and is reported."""
    internal_calc = build_calculator_tool()
    project_calc = make_tool("calculator", lambda p: {"result": 0})

    internal = ToolboxBuilder("standard").add_tool(internal_calc).build()
    workspace = WorkspaceBuilder()
    workspace.toolbox("math").add_tool(project_calc)

    with caplog.at_level(logging.WARNING):
        data = merge_registry(internal=internal, project=workspace.build())
    registry = ToolRegistry(data, test_settings)

    assert registry.get_tool("math/calculator") is project_calc
    assert registry.get_tool("calculator") is internal_calc
    assert "shadows internal tool 'calculator'" in caplog.text


def test_higher_tier_overrides_same_full_name(make_tool, caplog):
    internal_version = make_tool("calculator", lambda p: "internal")
    org_version = make_tool("calculator", lambda p: "org")
    project_version = make_tool("calculator", lambda p: "project")

    merger = (
        RegistryMerger()
        .add_source(RegistryTier.PROJECT, {"calculator": project_version})
        .add_source(RegistryTier.INTERNAL, {"calculator": internal_version})
        .add_source(RegistryTier.ORGANIZATION, {"calculator": org_version})
    )
    with caplog.at_level(logging.WARNING):
        data = merger.merge()

    assert data.tools["calculator"] is project_version
    assert data.tier_of("calculator") is RegistryTier.PROJECT
    assert "overrides" in caplog.text


def test_override_disabled_raises(make_tool):
    merger = (
        RegistryMerger(allow_override=False)
        .add_source(RegistryTier.INTERNAL, {"echo": make_tool("echo", lambda p: p)})
        .add_source(RegistryTier.PROJECT, {"echo": make_tool("echo", lambda p: p)})
    )

    with pytest.raises(ToolRegistrationConflictError):
        merger.merge()


def test_merge_runs_once():
    merger = RegistryMerger()
    merger.merge()

    with pytest.raises(RuntimeError):
        merger.merge()


def test_organization_tools_are_fully_qualified(make_tool, test_settings):
    org_workspace = WorkspaceBuilder()
    org_workspace.toolbox("search").add_tool(make_tool("web", lambda p: p))

    data = merge_registry(organizations={"acme": org_workspace.build()})
    registry = ToolRegistry(data, test_settings)

    assert registry.list_tools() == ["acme/search/web"]
    assert registry.list_toolkits() == ["acme/search"]
    assert data.tier_of("acme/search/web") is RegistryTier.ORGANIZATION


def test_lookup_is_deterministic(registry):
    assert registry.get_tool("math/add") is registry.get_tool("math/add")
    assert registry.has_tool("math/add")
    assert "math/add" in registry
    assert len(registry) == 2


def test_colon_separator_is_not_an_alias(registry):
    with pytest.raises(ToolNotFoundError) as exc_info:
        registry.get_tool("math:add")

    assert exc_info.value.tool_name == "math:add"
    assert registry.get("math:add") is None


def test_registry_data_is_read_only(registry, add_tool):
    with pytest.raises(TypeError):
        registry.data.tools["math/other"] = add_tool


def test_list_tools_and_toolkits(registry):
    assert registry.list_tools() == ["calculator", "math/add"]
    assert registry.list_toolkits() == ["math", "standard"]


def test_declared_toolkit_metadata(make_tool, test_settings):
    workspace = WorkspaceBuilder()
    workspace.toolbox("math").add_tool(make_tool("add", lambda p: p)).with_metadata(
        description="Math tools", version="1.2.0", author="team"
    )
    registry = ToolRegistry(merge_registry(project=workspace.build()), test_settings)

    metadata, source = registry.toolkit_metadata("math")

    assert source == "declared"
    assert metadata.description == "Math tools"
    assert metadata.version == "1.2.0"


def test_first_tool_metadata_fallback(registry):
    metadata, source = registry.toolkit_metadata("math")

    assert source == "first_tool"
    assert metadata.name == "math"
    assert metadata.description == "add tool"
    assert metadata.version == "0.0.1"


def test_defaults_metadata_fallback(add_tool, test_settings):
    settings = test_settings.model_copy(update={"toolkit_metadata_fallback": "defaults"})
    workspace = WorkspaceBuilder()
    workspace.toolbox("math").add_tool(add_tool)
    registry = ToolRegistry(merge_registry(project=workspace.build()), settings)

    metadata, source = registry.toolkit_metadata("math")

    assert source == "defaults"
    assert metadata.description == ""
    assert metadata.author == "system"


def test_unknown_toolkit_raises(registry):
    with pytest.raises(ToolkitNotFoundError):
        registry.get_toolkit("nope")


@pytest.mark.asyncio
async def test_toolkit_tools_execute_through_dispatcher(dispatcher):
    toolkit = dispatcher.get_toolkit("math")

    result = await toolkit.get("add").execute({"a": 2, "b": 3})

    assert result.ok
    assert result.output.sum == 5
    assert result.tool_name == "math/add"


@pytest.mark.asyncio
async def test_internal_toolkit_uses_configured_name(registry):
    toolkit = registry.get_toolkit("standard")

    result = await toolkit.get("calculator").execute({"expression": "1 + 1"})

    assert list(toolkit.tools) == ["calculator"]
    assert result.output.result == 2


@pytest.mark.asyncio
async def test_unbound_toolkit_tool_uses_registry_settings(registry, test_settings):
    restricted = test_settings.model_copy(update={"allowed_tools": ["other/*"]})
    toolkit = ToolRegistry(registry.data, restricted).get_toolkit("math")

    result = await toolkit.get("add").execute({"a": 2, "b": 3})

    assert isinstance(result.error, ToolExecutionError)
    assert "permission denied" in str(result.error)

def test_toolkit_get_unknown_tool(registry):
    with pytest.raises(ToolNotFoundError):
        registry.get_toolkit("math").get("subtract")


def test_get_schema(registry):
    schema = registry.get_schema("calculator")

    assert schema["name"] == "calculator"
    assert "expression" in schema["parameters"]["properties"]
    assert schema["parameters"]["required"] == ["expression"]
    assert schema["dangerous"] is False
    assert [s["name"] for s in registry.get_schemas()] == ["calculator", "math/add"]


def test_describe_tools(registry):
    text = registry.describe_tools()

    assert "### calculator" in text
    assert "- expression: string (required)" in text
    assert "### math/add" in text
