"""
Standard library tools, registered in the internal tier under their
simple names.
"""
from toolengine.config import Settings, get_settings
from toolengine.tools.builders import Toolbox, ToolboxBuilder
from toolengine.tools.stdlib.calculator import build_calculator_tool, evaluate
from toolengine.tools.stdlib.date_time import build_datetime_tool
from toolengine.tools.stdlib.echo import echo
from toolengine.tools.stdlib.news import HackerNewsReader


def build_internal_toolbox(
    settings: Settings | None = None,
    news_reader: HackerNewsReader | None = None
) -> Toolbox:
    """
    Build the internal toolbox.

    Args:
        settings: Engine settings
        news_reader: Reader backing the news-reader tool (created if omitted)

    Returns:
        Toolbox named after internal_toolkit_name
    """
    settings = settings or get_settings()
    news_reader = news_reader or HackerNewsReader(settings=settings)

    return (
        ToolboxBuilder(settings.internal_toolkit_name, allow_override=False)
        .add_tools([
            build_calculator_tool(),
            build_datetime_tool(),
            echo,
            news_reader.as_tool(),
        ])
        .with_metadata(
            description="Standard library tools",
            version=settings.app_version,
            author="system"
        )
        .build()
    )


__all__ = [
    "HackerNewsReader",
    "build_calculator_tool",
    "build_datetime_tool",
    "build_internal_toolbox",
    "echo",
    "evaluate",
]
