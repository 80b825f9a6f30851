"""Web search via the Tavily API."""

import httpx
from pydantic import BaseModel, Field

from dropdawn.logging import get_logger
from dropdawn.services.redact import hash_text
from dropdawn.tools.base import Tool, ToolContext

logger = get_logger(__name__)

TAVILY_SEARCH_URL = "https://api.tavily.com/search"
MAX_RESULTS = 5


class WebSearchParams(BaseModel):
    query: str = Field(..., min_length=1, description="The search query")


async def web_search(params: WebSearchParams, ctx: ToolContext) -> dict:
    api_key = ctx.settings.tavily_api_key
    if not api_key:
        return {"error": "TAVILY_API_KEY is not configured"}

    try:
        response = await ctx.http_client.post(
            TAVILY_SEARCH_URL,
            headers={"Authorization": f"Bearer {api_key}"},
            json={
                "query": params.query,
                "search_depth": "basic",
                "max_results": MAX_RESULTS,
            },
            timeout=httpx.Timeout(30.0, connect=5.0),
        )
        response.raise_for_status()
        data = response.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.warning(
            "tool.web_search.failed",
            error_type=type(e).__name__,
            query_sha256=hash_text(params.query),
        )
        return {"error": "Search failed"}

    results = [
        {
            "title": item.get("title"),
            "url": item.get("url"),
            "content": item.get("content"),
            "score": item.get("score"),
        }
        for item in data.get("results", [])[:MAX_RESULTS]
    ]
    return {"results": results}


WEB_SEARCH_TOOL = Tool(
    name="webSearch",
    description="Search the web for information using Tavily API.",
    params_model=WebSearchParams,
    handler=web_search,
)
