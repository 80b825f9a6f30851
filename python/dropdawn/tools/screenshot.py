"""Website screenshots through the stagee.art capture API."""

import httpx
from pydantic import BaseModel, Field

from dropdawn.logging import get_logger
from dropdawn.tools.base import Tool, ToolContext

logger = get_logger(__name__)

SCREENSHOT_API_URL = "https://www.stagee.art/api/screenshot"


class ScreenshotParams(BaseModel):
    url: str = Field(..., min_length=1, description="The URL to take a screenshot of")


async def take_screenshot(params: ScreenshotParams, ctx: ToolContext) -> dict:
    try:
        response = await ctx.http_client.post(
            SCREENSHOT_API_URL,
            json={"url": params.url, "deviceType": "desktop"},
            timeout=httpx.Timeout(60.0, connect=10.0),
        )
        response.raise_for_status()
        image = response.json().get("screenshot")
    except httpx.HTTPStatusError as e:
        logger.warning("tool.screenshot.failed", status_code=e.response.status_code)
        status = e.response.status_code
        return {"error": f"Failed to take screenshot: API request failed ({status})"}
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("tool.screenshot.failed", error_type=type(e).__name__)
        return {"error": f"Failed to take screenshot: {type(e).__name__}"}

    if not image:
        return {"error": "Failed to take screenshot: the capture service returned no image"}
    # The API returns bare base64 JPEG data
    return {"image": f"data:image/jpeg;base64,{image}"}


SCREENSHOT_TOOL = Tool(
    name="screenshot",
    description="Take a screenshot of a given URL",
    params_model=ScreenshotParams,
    handler=take_screenshot,
)
