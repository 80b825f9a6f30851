"""Site lifecycle operations.

Each operation returns a plain dict. Provider failures never raise out of
this module: they come back as {"error": "..."} so the model can explain
them to the user.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from dropdawn.logging import get_logger
from dropdawn.services.hosting.client import HostingApiError, NetlifyClient, SiteNotFoundError
from dropdawn.services.hosting.deploys import (
    DEFAULT_POLL_ATTEMPTS,
    DEFAULT_POLL_INTERVAL_S,
    DeployFailedError,
    await_deploy_ready,
    submit_archive,
)
from dropdawn.services.hosting.packager import (
    PackagingError,
    SiteBundle,
    function_endpoints,
    package_site,
)
from dropdawn.services.hosting.resolver import resolve_site_id

logger = get_logger(__name__)

TOKEN_ENV_VAR = "NETLIFY_ACCESS_TOKEN"


def missing_token_error(action: str) -> dict[str, str]:
    return {"error": f"{action} failed: {TOKEN_ENV_VAR} is missing from environment variables."}


def site_not_found_error(identifier: str) -> dict[str, str]:
    return {
        "error": (
            f'Could not find a Netlify site with the ID or URL provided ("{identifier}"). '
            "Please verify the site ID or create a new site."
        )
    }


def function_urls(site_url: str | None, functions: dict[str, str] | None) -> list[str]:
    if not site_url or not functions:
        return []
    base = site_url.rstrip("/")
    return [f"{base}/.netlify/functions/{endpoint}" for endpoint in function_endpoints(functions)]


class SiteOperations:
    """Create, update, rename, delete and roll back hosted sites.

    Args:
        http_client: Shared httpx client.
        token: Hosting provider access token; None disables every operation.
        poll_attempts / poll_interval_s: Deploy polling ceiling.
        deploy_timeout_s: Optional overall ceiling for one deploy wait.
        sleep: Awaitable sleep used between polls.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        token: str | None,
        *,
        poll_attempts: int = DEFAULT_POLL_ATTEMPTS,
        poll_interval_s: float = DEFAULT_POLL_INTERVAL_S,
        deploy_timeout_s: float | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._http_client = http_client
        self._token = token
        self._poll_attempts = poll_attempts
        self._poll_interval_s = poll_interval_s
        self._deploy_timeout_s = deploy_timeout_s
        self._sleep = sleep

    def _client(self) -> NetlifyClient:
        return NetlifyClient(self._http_client, self._token)

    async def _target(self, client: NetlifyClient, identifier: str) -> str:
        # Unresolved identifiers are sent as-is; the provider's 404 produces
        # the actionable error.
        resolved = await resolve_site_id(client, identifier)
        return resolved or identifier

    async def _deploy(
        self,
        bundle: SiteBundle,
        site_id: str | None,
        *,
        full_stack: bool,
    ) -> dict[str, Any]:
        kind = "full_stack" if full_stack else "static"
        client = self._client()
        target = await self._target(client, site_id) if site_id else None

        archive = package_site(bundle, full_stack=full_stack)
        try:
            submission = await submit_archive(client, archive, target)
        except SiteNotFoundError:
            if target is None:
                raise
            logger.info("site.deploy.not_found", kind=kind, site_id=target)
            return site_not_found_error(site_id)

        if submission.deploy_id:
            deadline = None
            if self._deploy_timeout_s is not None:
                deadline = time.monotonic() + self._deploy_timeout_s
            await await_deploy_ready(
                client,
                submission.deploy_id,
                max_attempts=self._poll_attempts,
                interval_s=self._poll_interval_s,
                deadline=deadline,
                sleep=self._sleep,
            )

        site_url = submission.url
        site_name = submission.name
        admin_url = submission.admin_url
        if target is not None:
            # The deploy object carries a preview URL; report the site's primary URL.
            try:
                site = await client.get_site(submission.site_id)
            except HostingApiError as e:
                logger.warning(
                    "site.refetch.failed", site_id=submission.site_id, status_code=e.status_code
                )
            else:
                site_url = site.get("ssl_url") or site.get("url") or site_url
                site_name = site.get("name", site_name)
                admin_url = site.get("admin_url", admin_url)

        logger.info("site.deployed", kind=kind, site_id=submission.site_id, updated=bool(target))
        return {
            "siteUrl": site_url,
            "siteName": site_name,
            "adminUrl": admin_url,
            "siteId": submission.site_id,
        }

    async def deploy_static_site(
        self,
        html: str,
        css: str | None = None,
        js: str | None = None,
        site_id: str | None = None,
    ) -> dict[str, Any]:
        """Create a static site, or deploy a new version when site_id is given."""
        if not self._token:
            return missing_token_error("Deploy")

        try:
            result = await self._deploy(SiteBundle(html, css, js), site_id, full_stack=False)
        except (PackagingError, DeployFailedError, HostingApiError) as e:
            logger.warning("site.deploy.failed", kind="static", error_type=type(e).__name__)
            return {"error": f"Failed to deploy landing page: {e}"}

        if "error" in result:
            return result
        message = (
            "Static site updated successfully!" if site_id else "Static site deployed successfully!"
        )
        return {"message": message, **result}

    async def deploy_full_stack_app(
        self,
        html: str,
        css: str | None = None,
        js: str | None = None,
        functions: dict[str, str] | None = None,
        site_id: str | None = None,
    ) -> dict[str, Any]:
        """Like deploy_static_site, plus serverless functions and netlify.toml."""
        if not self._token:
            return missing_token_error("Deploy")

        bundle = SiteBundle(html, css, js, functions)
        try:
            result = await self._deploy(bundle, site_id, full_stack=True)
        except (PackagingError, DeployFailedError, HostingApiError) as e:
            logger.warning("site.deploy.failed", kind="full_stack", error_type=type(e).__name__)
            return {"error": f"Full stack deploy failed: {e}"}

        if "error" in result:
            return result
        message = (
            "Full stack app updated successfully!"
            if site_id
            else "Full stack app deployed successfully!"
        )
        return {
            "message": message,
            **result,
            "functionUrls": function_urls(result["siteUrl"], functions),
        }

    async def rename_site(self, site_id: str, new_name: str) -> dict[str, Any]:
        """Change the site's subdomain. The site id is unchanged."""
        if not self._token:
            return missing_token_error("Rename")

        client = self._client()
        try:
            target = await self._target(client, site_id)
            data = await client.update_site(target, {"name": new_name})
        except SiteNotFoundError:
            return site_not_found_error(site_id)
        except HostingApiError as e:
            logger.warning("site.rename.failed", status_code=e.status_code)
            return {"error": f"Failed to update site domain: {e}"}

        logger.info("site.renamed", site_id=target)
        return {
            "message": "Site domain updated successfully.",
            "siteUrl": data.get("ssl_url") or data.get("url"),
            "adminUrl": data.get("admin_url"),
            "newName": data.get("name"),
            "siteId": data.get("id") or target,
        }

    async def delete_site(self, site_id: str) -> dict[str, Any]:
        """Delete a site. Irreversible."""
        if not self._token:
            return missing_token_error("Deletion")

        client = self._client()
        try:
            target = await self._target(client, site_id)
            await client.delete_site(target)
        except SiteNotFoundError:
            return site_not_found_error(site_id)
        except HostingApiError as e:
            logger.warning("site.delete.failed", status_code=e.status_code)
            return {"error": f"Failed to delete landing page: {e}"}

        logger.info("site.deleted", site_id=target)
        return {"message": "Landing page deleted successfully!", "siteId": target}

    async def rollback_site(self, site_id: str) -> dict[str, Any]:
        """Restore the deploy immediately before the current one.

        Assumes the provider lists ready deploys newest first, so index 0 is
        live and index 1 is the previous version.
        """
        if not self._token:
            return missing_token_error("Rollback")

        client = self._client()
        try:
            target = await self._target(client, site_id)
            deploys = await client.list_deploys(target, state="ready", per_page=5)
            if len(deploys or []) < 2:
                return {
                    "error": (
                        "Not enough deploy history to rollback (need at least 2 ready deploys)."
                    )
                }
            previous = deploys[1]
            await client.restore_deploy(target, previous["id"])
        except SiteNotFoundError:
            return site_not_found_error(site_id)
        except HostingApiError as e:
            logger.warning("site.rollback.failed", status_code=e.status_code)
            return {"error": f"Rollback failed: {e}"}

        logger.info("site.rolled_back", site_id=target, deploy_id=previous["id"])
        created_at = previous.get("created_at")
        return {
            "message": f"Successfully triggered rollback to deploy from {created_at}",
            "deployId": previous["id"],
            "context": previous.get("context"),
            "branch": previous.get("branch"),
            "createdAt": created_at,
        }
