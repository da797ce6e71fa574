"""
Models package for the tool engine.
"""
from toolengine.models.schemas import (
    ErrorResponse,
    ExecutionStage,
    HealthCheckResponse,
    HttpImplementationSpec,
    NativeImplementationSpec,
    RemoteImplementationSpec,
    RunToolRequest,
    ToolCall,
    ToolCallStatus,
    ToolkitFile,
    ToolkitMetadata,
    ToolkitResponse,
    ToolListResponse,
    ToolMetadataSpec,
    ToolResult,
    ToolSpec,
)

__all__ = [
    "ErrorResponse",
    "ExecutionStage",
    "HealthCheckResponse",
    "HttpImplementationSpec",
    "NativeImplementationSpec",
    "RemoteImplementationSpec",
    "RunToolRequest",
    "ToolCall",
    "ToolCallStatus",
    "ToolkitFile",
    "ToolkitMetadata",
    "ToolkitResponse",
    "ToolListResponse",
    "ToolMetadataSpec",
    "ToolResult",
    "ToolSpec",
]
