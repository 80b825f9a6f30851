"""Netlify REST API client.

Thin async wrapper over the endpoints the site lifecycle needs. Every call is
bearer-authenticated; non-2xx responses raise HostingApiError (SiteNotFoundError
for 404) and transport failures raise HostingApiError with no status code.
"""

import time
from typing import Any

import httpx

from dropdawn.logging import get_logger

logger = get_logger(__name__)

NETLIFY_API_BASE = "https://api.netlify.com/api/v1"

# Archive uploads can be slow; metadata calls should not be.
UPLOAD_TIMEOUT = httpx.Timeout(120.0, connect=10.0)
DEFAULT_TIMEOUT = httpx.Timeout(30.0, connect=10.0)

MAX_DETAIL_CHARS = 500


class HostingApiError(Exception):
    """A hosting provider call failed.

    Attributes:
        status_code: HTTP status, or None for transport failures.
        detail: Provider response body (truncated) or transport error text.
    """

    def __init__(self, status_code: int | None, detail: str):
        self.status_code = status_code
        self.detail = detail
        if status_code is None:
            message = f"Netlify API unreachable: {detail}"
        else:
            message = f"Netlify API request failed: {status_code} - {detail}"
        super().__init__(message)


class SiteNotFoundError(HostingApiError):
    """The provider returned 404 for a site-scoped call."""


class NetlifyClient:
    """Async client for the Netlify API.

    The httpx.AsyncClient is owned by the caller (shared app client).
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        token: str,
        base_url: str = NETLIFY_API_BASE,
    ):
        self._client = http_client
        self._token = token
        self._base_url = base_url.rstrip("/")

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        archive: bytes | None = None,
        timeout: httpx.Timeout = DEFAULT_TIMEOUT,
    ) -> Any:
        headers = {"Authorization": f"Bearer {self._token}"}
        if archive is not None:
            headers["Content-Type"] = "application/zip"

        start = time.monotonic()
        try:
            response = await self._client.request(
                method,
                f"{self._base_url}{path}",
                params=params,
                json=json,
                content=archive,
                headers=headers,
                timeout=timeout,
            )
        except httpx.TransportError as e:
            logger.warning(
                "hosting.request.failed",
                method=method,
                path=path,
                error_type=type(e).__name__,
                latency_ms=int((time.monotonic() - start) * 1000),
            )
            raise HostingApiError(None, type(e).__name__) from e

        latency_ms = int((time.monotonic() - start) * 1000)
        if response.status_code >= 400:
            logger.warning(
                "hosting.request.failed",
                method=method,
                path=path,
                status_code=response.status_code,
                latency_ms=latency_ms,
            )
            detail = response.text[:MAX_DETAIL_CHARS]
            if response.status_code == 404:
                raise SiteNotFoundError(404, detail)
            raise HostingApiError(response.status_code, detail)

        logger.debug(
            "hosting.request.finished",
            method=method,
            path=path,
            status_code=response.status_code,
            latency_ms=latency_ms,
        )
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def list_sites(self) -> list[dict[str, Any]]:
        return await self._request("GET", "/sites", params={"filter": "all"})

    async def create_site(self, archive: bytes) -> dict[str, Any]:
        """Create a site whose initial deploy is the archive."""
        return await self._request("POST", "/sites", archive=archive, timeout=UPLOAD_TIMEOUT)

    async def create_deploy(self, site_id: str, archive: bytes) -> dict[str, Any]:
        """Deploy the archive to an existing site."""
        return await self._request(
            "POST", f"/sites/{site_id}/deploys", archive=archive, timeout=UPLOAD_TIMEOUT
        )

    async def get_site(self, site_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/sites/{site_id}")

    async def update_site(self, site_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        return await self._request("PATCH", f"/sites/{site_id}", json=fields)

    async def delete_site(self, site_id: str) -> None:
        await self._request("DELETE", f"/sites/{site_id}")

    async def list_deploys(
        self, site_id: str, *, state: str = "ready", per_page: int = 5
    ) -> list[dict[str, Any]]:
        return await self._request(
            "GET",
            f"/sites/{site_id}/deploys",
            params={"state": state, "per_page": per_page},
        )

    async def restore_deploy(self, site_id: str, deploy_id: str) -> dict[str, Any]:
        return await self._request("POST", f"/sites/{site_id}/deploys/{deploy_id}/restore")

    async def get_deploy(self, deploy_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/deploys/{deploy_id}")
