"""
Echo tool, mostly useful for wiring checks.
"""
from toolengine.tools.base import tool


@tool(
    name="echo",
    description="Echo back the input message",
    output_schema=str,
    version="1.0.0",
    author="system",
    tags=("utility",)
)
async def echo(message: str, prefix: str = "") -> str:
    return f"{prefix}{message}" if prefix else message
