"""Tool registry primitives.

A Tool is a name, a description, a pydantic parameter model and an async
handler. ToolRegistry.execute validates arguments and runs the handler; it
never raises: unknown tools, invalid arguments and handler crashes all come
back as {"error": ...} so the model can react to them.
"""

import asyncio
import copy
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

import httpx
from pydantic import BaseModel, ValidationError

from dropdawn.config import Settings
from dropdawn.logging import get_logger
from dropdawn.services.llm.types import ToolSpec

logger = get_logger(__name__)

# Presentation text shown while a tool runs
TOOL_STATUS_MESSAGES: dict[str, str] = {
    "calculate": "Calculating...",
    "weather": "Checking weather...",
    "webSearch": "Searching the web...",
    "pdfGenerator": "Generating PDF...",
    "invoiceGenerator": "Designing invoice...",
    "screenshot": "Taking screenshot...",
    "staticSiteGenerator": "Deploying site...",
    "fullStackAppGenerator": "Deploying full stack app...",
    "updateSiteDomain": "Updating site domain...",
    "rollbackSite": "Rolling back site...",
    "deleteLandingPage": "Deleting site...",
}


def status_message(tool_name: str) -> str:
    return TOOL_STATUS_MESSAGES.get(tool_name, f"Using {tool_name}...")


@dataclass
class ToolContext:
    """Per-request resources handed to tool handlers."""

    http_client: httpx.AsyncClient
    settings: Settings
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep


ToolHandler = Callable[[Any, ToolContext], Awaitable[dict[str, Any]]]


@dataclass(frozen=True)
class Tool:
    name: str
    description: str
    params_model: type[BaseModel]
    handler: ToolHandler

    def spec(self) -> ToolSpec:
        return ToolSpec(
            name=self.name,
            description=self.description,
            parameters=json_schema_for(self.params_model),
        )


@dataclass
class ToolOutcome:
    """One executed tool call, keyed by tool name for rendering and storage."""

    tool_call_id: str
    tool_name: str
    args: dict[str, Any]
    result: dict[str, Any] = field(default_factory=dict)

    @property
    def is_error(self) -> bool:
        return "error" in self.result

    def to_dict(self) -> dict[str, Any]:
        return {
            "toolCallId": self.tool_call_id,
            "toolName": self.tool_name,
            "args": self.args,
            "result": self.result,
        }


_DROPPED_SCHEMA_KEYS = {"title", "default", "additionalProperties", "format", "$defs"}


def _inline(node: Any, defs: dict[str, Any]) -> Any:
    if isinstance(node, list):
        return [_inline(item, defs) for item in node]
    if not isinstance(node, dict):
        return node

    if "$ref" in node:
        target = defs[node["$ref"].rsplit("/", 1)[-1]]
        merged = {**copy.deepcopy(target), **{k: v for k, v in node.items() if k != "$ref"}}
        return _inline(merged, defs)

    any_of = node.get("anyOf")
    if isinstance(any_of, list):
        options = [option for option in any_of if option != {"type": "null"}]
        if len(options) == 1:
            rest = {k: v for k, v in node.items() if k != "anyOf"}
            return _inline({**options[0], **rest}, defs)

    cleaned = {}
    for key, value in node.items():
        if key in _DROPPED_SCHEMA_KEYS:
            continue
        if key == "properties" and isinstance(value, dict):
            # Property names are data, not schema keywords
            cleaned[key] = {name: _inline(prop, defs) for name, prop in value.items()}
        else:
            cleaned[key] = _inline(value, defs)
    return cleaned


def json_schema_for(model: type[BaseModel]) -> dict[str, Any]:
    """Provider-neutral JSON schema for a parameter model.

    Uses wire (alias) names, inlines $defs, collapses Optional[X] to X and
    drops keywords some providers reject (title, default, format, additionalProperties).
    """
    schema = model.model_json_schema(by_alias=True)
    return _inline(schema, schema.get("$defs", {}))


class ToolRegistry:
    """The catalog of tools exposed to the model."""

    def __init__(self, tools: list[Tool]):
        self._tools: dict[str, Tool] = {}
        for tool in tools:
            if tool.name in self._tools:
                raise ValueError(f"Duplicate tool name: {tool.name}")
            self._tools[tool.name] = tool

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def specs(self) -> list[ToolSpec]:
        return [tool.spec() for tool in self._tools.values()]

    async def execute(self, name: str, arguments: dict[str, Any], ctx: ToolContext) -> dict:
        """Validate arguments and run the tool. Failures are returned, not raised."""
        tool = self._tools.get(name)
        if tool is None:
            logger.warning("tool.unknown", tool_name=name)
            return {"error": f"Unknown tool: {name}"}

        try:
            params = tool.params_model.model_validate(arguments or {})
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'arguments'}: {err['msg']}"
                for err in e.errors()
            )
            logger.info("tool.invalid_arguments", tool_name=name, error_count=e.error_count())
            return {"error": f"Invalid arguments for {name}: {problems}"}

        try:
            result = await tool.handler(params, ctx)
        except Exception as e:
            logger.exception("tool.failed", tool_name=name, error_type=type(e).__name__)
            return {"error": f"{name} failed unexpectedly"}

        if not isinstance(result, dict):
            return {"result": result}
        return result
