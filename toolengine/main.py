"""
Main application entry point for the tool engine.
FastAPI application exposing the registry and dispatcher over HTTP.
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from toolengine.bootstrap import ToolEngine, create_engine
from toolengine.config import Settings, get_settings, setup_logging
from toolengine.models.schemas import (
    ErrorResponse,
    HealthCheckResponse,
    RunToolRequest,
    ToolkitResponse,
    ToolListResponse,
    ToolResult,
)
from toolengine.tools.errors import (
    ToolError,
    ToolExecutionError,
    ToolInputValidationError,
    ToolkitNotFoundError,
    ToolNotFoundError,
    ToolOutputValidationError,
)

logger = logging.getLogger(__name__)


def error_status(error: ToolError) -> int:
    """Map a tool error to an HTTP status code."""
    match error:
        case ToolNotFoundError() | ToolkitNotFoundError():
            return 404
        case ToolInputValidationError():
            return 422
        case ToolOutputValidationError():
            return 502
        case ToolExecutionError():
            return 503 if error.retryable else 502
        case _:
            return 500


def error_response(error: ToolError, **extra) -> JSONResponse:
    details = error.to_dict()
    details.update(extra)
    return JSONResponse(
        status_code=error_status(error),
        content=ErrorResponse(
            error=error.kind,
            message=str(error),
            details=details
        ).model_dump(mode="json")
    )


def get_engine(request: Request) -> ToolEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Tool engine not initialized")
    return engine


def create_app(settings: Settings | None = None, engine: ToolEngine | None = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        settings: Engine settings
        engine: Prebuilt engine; created from settings at startup if omitted

    Returns:
        FastAPI: Application
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan manager."""
        logger.info("Starting tool engine...")
        owned = engine is None

        try:
            app.state.engine = engine or create_engine(settings)
            logger.info(f"Tool engine started with {len(app.state.engine.registry)} tools")
            yield
        except Exception as e:
            logger.error(f"Startup error: {e}")
            raise
        finally:
            logger.info("Shutting down tool engine...")
            current = getattr(app.state, "engine", None)
            if owned and current is not None:
                await current.close()
            app.state.engine = None
            logger.info("Tool engine shutdown complete")

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Tool registry and execution engine",
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        """Handle HTTP exceptions."""
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(
                error="HTTPError",
                message=str(exc.detail)
            ).model_dump(mode="json")
        )

    @app.exception_handler(ToolError)
    async def tool_error_handler(request: Request, exc: ToolError) -> JSONResponse:
        """Handle tool errors raised by lookups."""
        return error_response(exc)

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle general exceptions."""
        logger.error(f"Unhandled exception: {exc}")
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="InternalServerError",
                message=str(exc) if settings.debug else "Internal server error"
            ).model_dump(mode="json")
        )

    @app.get("/health", response_model=HealthCheckResponse, tags=["System"])
    async def health_check(request: Request) -> HealthCheckResponse:
        """Check system health status."""
        engine_ = getattr(request.app.state, "engine", None)
        components = {
            "registry": "initialized" if engine_ else "not_initialized",
            "dispatcher": "initialized" if engine_ else "not_initialized",
            "remote_resolver": "configured" if engine_ and engine_.resolver else "not_configured",
        }
        return HealthCheckResponse(
            status="healthy" if engine_ else "starting",
            version=settings.app_version,
            components=components
        )

    @app.get("/", tags=["System"])
    async def root() -> dict:
        """Root endpoint."""
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "status": "running",
            "docs": "/docs"
        }

    @app.get("/tools", response_model=ToolListResponse, tags=["Tools"])
    async def list_tools(request: Request) -> ToolListResponse:
        """List all available tools by fully qualified name."""
        tools = get_engine(request).registry.list_tools()
        return ToolListResponse(tools=tools, count=len(tools))

    @app.get("/tools/schemas", tags=["Tools"])
    async def get_tool_schemas(request: Request) -> list[dict]:
        """Function-calling descriptors for every tool."""
        return get_engine(request).registry.get_schemas()

    @app.post("/tools/{name:path}/run", response_model=ToolResult, tags=["Tools"])
    async def run_tool(name: str, body: RunToolRequest, request: Request):
        """
        Run a tool.

        Failed calls answer with the status of their error kind and an
        ErrorResponse body.
        """
        result = await get_engine(request).dispatcher.run(name, body.input, call_id=body.call_id)
        if not result.ok:
            return error_response(result.error, call_id=result.call_id, stage=result.stage.value)
        return result

    @app.get("/tools/{name:path}", tags=["Tools"])
    async def get_tool_schema(name: str, request: Request) -> dict:
        """Get schema for a specific tool."""
        return get_engine(request).registry.get_schema(name)

    @app.get("/toolkits", tags=["Toolkits"])
    async def list_toolkits(request: Request) -> dict:
        """List all toolkit names."""
        toolkits = get_engine(request).registry.list_toolkits()
        return {"toolkits": toolkits, "count": len(toolkits)}

    @app.get("/toolkits/{namespace:path}", response_model=ToolkitResponse, tags=["Toolkits"])
    async def get_toolkit(namespace: str, request: Request) -> ToolkitResponse:
        """Describe a toolkit and its tools."""
        toolkit = get_engine(request).registry.get_toolkit(namespace)
        return ToolkitResponse(
            name=toolkit.name,
            description=toolkit.description,
            version=toolkit.version,
            author=toolkit.author,
            tools=sorted(toolkit.tools),
            metadata_source=toolkit.metadata_source
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    app_settings = get_settings()
    setup_logging(app_settings)

    uvicorn.run(
        "toolengine.main:app",
        host=app_settings.api_host,
        port=app_settings.api_port,
        reload=app_settings.debug
    )
