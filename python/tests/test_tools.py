"""Tests for the tool registry and the stateless tools.

Outbound HTTP (wttr.in, Tavily, screenshot API, Netlify) is mocked with respx.
"""

import base64
import json

import httpx
import pytest
import respx
from pydantic import BaseModel, Field

from dropdawn.config import Settings
from dropdawn.services.hosting.client import NETLIFY_API_BASE
from dropdawn.tools import (
    TOOL_STATUS_MESSAGES,
    Tool,
    ToolContext,
    ToolOutcome,
    ToolRegistry,
    build_default_registry,
    json_schema_for,
    status_message,
)
from dropdawn.tools.screenshot import SCREENSHOT_API_URL
from dropdawn.tools.web_search import TAVILY_SEARCH_URL

SITE_ID = "3f1c2b7e-9a4d-4c1e-8b2a-5d6e7f8a9b0c"

EXPECTED_TOOLS = [
    "calculate",
    "weather",
    "webSearch",
    "pdfGenerator",
    "invoiceGenerator",
    "screenshot",
    "staticSiteGenerator",
    "fullStackAppGenerator",
    "updateSiteDomain",
    "rollbackSite",
    "deleteLandingPage",
]


async def no_sleep(seconds: float) -> None:
    return None


def make_ctx(**overrides) -> ToolContext:
    settings = Settings(**overrides)
    return ToolContext(http_client=httpx.AsyncClient(), settings=settings, sleep=no_sleep)


@pytest.fixture
def registry() -> ToolRegistry:
    return build_default_registry()


@pytest.fixture
def ctx() -> ToolContext:
    return make_ctx()


class TestRegistry:
    def test_catalog_names(self, registry):
        assert registry.names == EXPECTED_TOOLS

    def test_every_tool_has_a_status_message(self):
        for name in EXPECTED_TOOLS:
            assert name in TOOL_STATUS_MESSAGES

    def test_unknown_status_message_falls_back(self):
        assert status_message("mystery") == "Using mystery..."

    def test_duplicate_names_rejected(self):
        tool = build_default_registry().get("calculate")
        with pytest.raises(ValueError):
            ToolRegistry([tool, tool])

    def test_specs_use_camel_case_and_clean_schema(self, registry):
        specs = {spec.name: spec for spec in registry.specs()}

        invoice = specs["invoiceGenerator"].parameters
        assert set(invoice["properties"]) == {
            "invoiceNumber",
            "clientName",
            "clientEmail",
            "items",
            "currency",
        }
        assert "currency" not in invoice["required"]
        assert "$defs" not in invoice
        # line items are inlined
        assert invoice["properties"]["items"]["items"]["properties"]["price"]["type"] == "number"

        static = specs["staticSiteGenerator"].parameters
        assert static["properties"]["siteId"]["type"] == "string"
        assert static["required"] == ["html"]

    def test_property_named_title_survives_cleaning(self, registry):
        pdf = {spec.name: spec for spec in registry.specs()}["pdfGenerator"].parameters
        assert "title" in pdf["properties"]
        assert "title" not in pdf

    @pytest.mark.asyncio
    async def test_unknown_tool_returns_error(self, registry, ctx):
        result = await registry.execute("portfolio", {}, ctx)
        assert result == {"error": "Unknown tool: portfolio"}

    @pytest.mark.asyncio
    async def test_invalid_arguments_return_error(self, registry, ctx):
        result = await registry.execute("calculate", {}, ctx)
        assert result["error"].startswith("Invalid arguments for calculate:")
        assert "expression" in result["error"]

    @pytest.mark.asyncio
    async def test_handler_crash_is_contained(self, ctx):
        class Params(BaseModel):
            x: int = Field(...)

        async def explode(params, ctx):
            raise RuntimeError("boom")

        registry = ToolRegistry([Tool("explode", "Always fails", Params, explode)])
        result = await registry.execute("explode", {"x": 1}, ctx)

        assert result == {"error": "explode failed unexpectedly"}

    def test_outcome_serialization(self):
        outcome = ToolOutcome("call_1", "calculate", {"expression": "1+1"}, {"result": 2})
        assert outcome.to_dict() == {
            "toolCallId": "call_1",
            "toolName": "calculate",
            "args": {"expression": "1+1"},
            "result": {"result": 2},
        }
        assert outcome.is_error is False

    def test_optional_fields_collapse_to_base_type(self):
        class Params(BaseModel):
            note: str | None = Field(None, description="optional note")

        schema = json_schema_for(Params)
        assert schema["properties"]["note"] == {"type": "string", "description": "optional note"}


class TestCalculateTool:
    @pytest.mark.asyncio
    async def test_result(self, registry, ctx):
        result = await registry.execute("calculate", {"expression": "(2+3)*4"}, ctx)
        assert result == {"result": 20, "expression": "(2+3)*4"}

    @pytest.mark.asyncio
    async def test_bad_expression(self, registry, ctx):
        result = await registry.execute("calculate", {"expression": "2 +* 2"}, ctx)
        assert result["error"].startswith("Invalid expression")


class TestWeatherTool:
    @pytest.mark.asyncio
    @respx.mock
    async def test_current_conditions(self, registry, ctx):
        route = respx.get(url__startswith="https://wttr.in/London").respond(
            200,
            json={
                "current_condition": [
                    {
                        "temp_C": "12",
                        "temp_F": "54",
                        "humidity": "81",
                        "windspeedKmph": "15",
                        "weatherDesc": [{"value": "Light rain"}],
                    }
                ]
            },
        )

        result = await registry.execute("weather", {"location": "London, UK"}, ctx)

        assert route.calls.last.request.url.params["format"] == "j1"
        assert result == {
            "location": "London, UK",
            "temperature": "12°C / 54°F",
            "condition": "Light rain",
            "humidity": "81%",
            "wind": "15 km/h",
        }

    @pytest.mark.asyncio
    @respx.mock
    async def test_upstream_failure(self, registry, ctx):
        respx.get(url__startswith="https://wttr.in/").respond(503)

        result = await registry.execute("weather", {"location": "Nowhere"}, ctx)

        assert result == {"error": "Failed to fetch weather data"}


class TestWebSearchTool:
    @pytest.mark.asyncio
    async def test_missing_key(self, registry, ctx):
        with respx.mock(assert_all_called=False) as mock:
            route = mock.post(TAVILY_SEARCH_URL)

            result = await registry.execute("webSearch", {"query": "python"}, ctx)

            assert result == {"error": "TAVILY_API_KEY is not configured"}
            assert not route.called

    @pytest.mark.asyncio
    @respx.mock
    async def test_search(self, registry):
        ctx = make_ctx(TAVILY_API_KEY="tvly-test")
        route = respx.post(TAVILY_SEARCH_URL).respond(
            200,
            json={
                "results": [
                    {"title": "Python", "url": "https://python.org", "content": "…", "score": 0.9}
                ]
            },
        )

        result = await registry.execute("webSearch", {"query": "python"}, ctx)

        body = json.loads(route.calls.last.request.read())
        assert route.calls.last.request.headers["Authorization"] == "Bearer tvly-test"
        assert body == {"query": "python", "search_depth": "basic", "max_results": 5}
        assert result["results"][0]["url"] == "https://python.org"


class TestScreenshotTool:
    @pytest.mark.asyncio
    @respx.mock
    async def test_returns_jpeg_data_uri(self, registry, ctx):
        route = respx.post(SCREENSHOT_API_URL).respond(200, json={"screenshot": "QUJD"})

        result = await registry.execute("screenshot", {"url": "https://example.com"}, ctx)

        assert json.loads(route.calls.last.request.read()) == {
            "url": "https://example.com",
            "deviceType": "desktop",
        }
        assert result == {"image": "data:image/jpeg;base64,QUJD"}

    @pytest.mark.asyncio
    @respx.mock
    async def test_upstream_failure(self, registry, ctx):
        respx.post(SCREENSHOT_API_URL).respond(500)

        result = await registry.execute("screenshot", {"url": "https://example.com"}, ctx)

        assert result["error"].startswith("Failed to take screenshot")


class TestDocumentTools:
    @pytest.mark.asyncio
    async def test_pdf_data_uri(self, registry, ctx):
        result = await registry.execute(
            "pdfGenerator",
            {"title": "Report", "content": "First paragraph.\n\n" + "word " * 400},
            ctx,
        )

        assert result["message"] == "PDF generated successfully"
        assert result["filename"] == "document.pdf"
        prefix = "data:application/pdf;base64,"
        assert result["dataUri"].startswith(prefix)
        assert base64.b64decode(result["dataUri"][len(prefix):]).startswith(b"%PDF")

    @pytest.mark.asyncio
    async def test_invoice_total(self, registry, ctx):
        result = await registry.execute(
            "invoiceGenerator",
            {
                "invoiceNumber": "INV-021",
                "clientName": "Ada Lovelace",
                "clientEmail": "ada@example.com",
                "items": [
                    {"description": "Design", "quantity": 2, "price": 150},
                    {"description": "Hosting", "quantity": 1, "price": 19.99},
                ],
                "currency": "eur",
            },
            ctx,
        )

        assert result["message"] == "Invoice generated successfully"
        assert result["invoiceNumber"] == "INV-021"
        assert result["grandTotal"] == "EUR 319.99"
        assert result["dataUri"].startswith("data:application/pdf;base64,")

    @pytest.mark.asyncio
    async def test_invoice_currency_defaults_to_usd(self, registry, ctx):
        result = await registry.execute(
            "invoiceGenerator",
            {
                "invoiceNumber": "1",
                "clientName": "A",
                "clientEmail": "a@example.com",
                "items": [{"description": "x", "quantity": 1, "price": 5}],
            },
            ctx,
        )
        assert result["grandTotal"] == "USD 5.00"

    @pytest.mark.asyncio
    async def test_invoice_rejects_bad_email(self, registry, ctx):
        result = await registry.execute(
            "invoiceGenerator",
            {"invoiceNumber": "1", "clientName": "A", "clientEmail": "not-an-email", "items": []},
            ctx,
        )
        assert "clientEmail" in result["error"]


class TestSiteTools:
    @pytest.mark.asyncio
    async def test_missing_token(self, registry, ctx):
        result = await registry.execute("deleteLandingPage", {"siteId": SITE_ID}, ctx)
        assert result == {
            "error": "Deletion failed: NETLIFY_ACCESS_TOKEN is missing from environment variables."
        }

    @pytest.mark.asyncio
    @respx.mock
    async def test_update_site_domain(self, registry):
        ctx = make_ctx(NETLIFY_ACCESS_TOKEN="nf-test")
        route = respx.patch(f"{NETLIFY_API_BASE}/sites/{SITE_ID}").respond(
            200, json={"id": SITE_ID, "name": "my-brand", "ssl_url": "https://my-brand.netlify.app"}
        )

        result = await registry.execute(
            "updateSiteDomain", {"siteId": SITE_ID, "newDomain": "my-brand"}, ctx
        )

        assert route.calls.last.request.headers["Authorization"] == "Bearer nf-test"
        assert result["newName"] == "my-brand"

    @pytest.mark.asyncio
    @respx.mock
    async def test_static_site_generator(self, registry):
        ctx = make_ctx(NETLIFY_ACCESS_TOKEN="nf-test", DEPLOY_POLL_ATTEMPTS=1)
        respx.post(f"{NETLIFY_API_BASE}/sites").respond(
            201,
            json={
                "id": SITE_ID,
                "deploy_id": "dep-1",
                "name": "fluffy-unicorn",
                "ssl_url": "https://fluffy-unicorn.netlify.app",
            },
        )
        respx.get(f"{NETLIFY_API_BASE}/deploys/dep-1").respond(200, json={"state": "ready"})

        result = await registry.execute(
            "staticSiteGenerator", {"html": "<html></html>", "projectName": "demo"}, ctx
        )

        assert result["siteId"] == SITE_ID
        assert result["siteUrl"] == "https://fluffy-unicorn.netlify.app"
