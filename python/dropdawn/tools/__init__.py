"""Tools the chat model can call."""

from dropdawn.tools.base import (
    TOOL_STATUS_MESSAGES,
    Tool,
    ToolContext,
    ToolOutcome,
    ToolRegistry,
    json_schema_for,
    status_message,
)
from dropdawn.tools.calculator import CALCULATE_TOOL
from dropdawn.tools.documents import INVOICE_TOOL, PDF_TOOL
from dropdawn.tools.screenshot import SCREENSHOT_TOOL
from dropdawn.tools.sites import (
    DELETE_SITE_TOOL,
    FULL_STACK_TOOL,
    ROLLBACK_TOOL,
    STATIC_SITE_TOOL,
    UPDATE_DOMAIN_TOOL,
)
from dropdawn.tools.weather import WEATHER_TOOL
from dropdawn.tools.web_search import WEB_SEARCH_TOOL

DEFAULT_TOOLS = [
    CALCULATE_TOOL,
    WEATHER_TOOL,
    WEB_SEARCH_TOOL,
    PDF_TOOL,
    INVOICE_TOOL,
    SCREENSHOT_TOOL,
    STATIC_SITE_TOOL,
    FULL_STACK_TOOL,
    UPDATE_DOMAIN_TOOL,
    ROLLBACK_TOOL,
    DELETE_SITE_TOOL,
]


def build_default_registry() -> ToolRegistry:
    return ToolRegistry(DEFAULT_TOOLS)


__all__ = [
    "DEFAULT_TOOLS",
    "TOOL_STATUS_MESSAGES",
    "Tool",
    "ToolContext",
    "ToolOutcome",
    "ToolRegistry",
    "build_default_registry",
    "json_schema_for",
    "status_message",
]
