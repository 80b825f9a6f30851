"""Deploy submission and status polling.

submit_archive uploads a packaged site, creating the site when no id is given.
await_deploy_ready polls the deploy until it is ready, fails, or the attempt
ceiling / deadline passes. Running out of attempts is a soft success: the
upload itself succeeded and the provider will usually finish on its own.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from dropdawn.logging import get_logger
from dropdawn.services.hosting.client import HostingApiError, NetlifyClient

logger = get_logger(__name__)

DEFAULT_POLL_ATTEMPTS = 30
DEFAULT_POLL_INTERVAL_S = 2.0

READY_STATE = "ready"
ERROR_STATE = "error"


class DeployFailedError(Exception):
    """The provider reported the deploy as failed."""

    def __init__(self, deploy_id: str, error_message: str | None):
        self.deploy_id = deploy_id
        self.error_message = error_message or "Unknown error"
        super().__init__(f"Deploy failed likely due to build error: {self.error_message}")


@dataclass
class Submission:
    """Result of uploading an archive.

    For a new site the provider returns the site object (with deploy_id); for
    an existing site it returns the deploy object (with site_id).
    """

    site_id: str
    deploy_id: str | None
    url: str | None
    admin_url: str | None = None
    name: str | None = None
    created: bool = False
    raw: dict[str, Any] = field(default_factory=dict, repr=False)


@dataclass
class DeployWait:
    state: str | None
    attempts: int
    timed_out: bool = False


async def submit_archive(
    client: NetlifyClient, archive: bytes, site_id: str | None = None
) -> Submission:
    """Upload the archive as a new site, or as a new deploy of site_id.

    Raises:
        SiteNotFoundError: site_id does not exist for this token.
        HostingApiError: Any other provider failure.
    """
    if site_id is None:
        data = await client.create_site(archive)
        submission = Submission(
            site_id=data["id"],
            deploy_id=data.get("deploy_id"),
            url=data.get("ssl_url") or data.get("url"),
            admin_url=data.get("admin_url"),
            name=data.get("name"),
            created=True,
            raw=data,
        )
    else:
        data = await client.create_deploy(site_id, archive)
        submission = Submission(
            site_id=data.get("site_id") or site_id,
            deploy_id=data.get("id"),
            url=data.get("ssl_url") or data.get("url"),
            admin_url=data.get("admin_url"),
            name=data.get("name"),
            raw=data,
        )

    logger.info(
        "deploy.submitted",
        site_id=submission.site_id,
        deploy_id=submission.deploy_id,
        created=submission.created,
        archive_bytes=len(archive),
    )
    return submission


async def await_deploy_ready(
    client: NetlifyClient,
    deploy_id: str,
    *,
    max_attempts: int = DEFAULT_POLL_ATTEMPTS,
    interval_s: float = DEFAULT_POLL_INTERVAL_S,
    deadline: float | None = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> DeployWait:
    """Poll a deploy until it reaches a terminal state.

    Args:
        client: Hosting API client.
        deploy_id: Deploy to watch.
        max_attempts: Maximum number of status requests.
        interval_s: Pause between status requests.
        deadline: Optional time.monotonic() value after which polling stops.
        sleep: Awaitable sleep, injectable for tests.

    Returns:
        DeployWait with timed_out=True when the ceiling or deadline was hit.

    Raises:
        DeployFailedError: The deploy reached the error state.
        asyncio.CancelledError: Propagated unchanged.
    """
    state: str | None = None
    attempts = 0

    while attempts < max_attempts:
        if deadline is not None and time.monotonic() >= deadline:
            break

        attempts += 1
        try:
            deploy = await client.get_deploy(deploy_id)
        except (HostingApiError, ValueError) as e:
            logger.warning(
                "deploy.poll.retry",
                deploy_id=deploy_id,
                attempt=attempts,
                error_type=type(e).__name__,
            )
        else:
            state = deploy.get("state")
            if state == READY_STATE:
                logger.info("deploy.poll.ready", deploy_id=deploy_id, attempts=attempts)
                return DeployWait(state=state, attempts=attempts)
            if state == ERROR_STATE:
                logger.warning("deploy.poll.error", deploy_id=deploy_id, attempts=attempts)
                raise DeployFailedError(deploy_id, deploy.get("error_message"))

        if attempts < max_attempts:
            await sleep(interval_s)

    logger.warning(
        "deploy.poll.timeout",
        deploy_id=deploy_id,
        attempts=attempts,
        last_state=state,
    )
    return DeployWait(state=state, attempts=attempts, timed_out=True)
