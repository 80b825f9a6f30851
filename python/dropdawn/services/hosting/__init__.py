"""Hosting provider integration: site resolution, packaging, deploys, lifecycle."""

from dropdawn.services.hosting.client import HostingApiError, NetlifyClient, SiteNotFoundError
from dropdawn.services.hosting.deploys import (
    DeployFailedError,
    DeployWait,
    Submission,
    await_deploy_ready,
    submit_archive,
)
from dropdawn.services.hosting.packager import (
    PackagingError,
    SiteBundle,
    build_site_files,
    package_site,
)
from dropdawn.services.hosting.resolver import resolve_site_id
from dropdawn.services.hosting.sites import SiteOperations

__all__ = [
    "DeployFailedError",
    "DeployWait",
    "HostingApiError",
    "NetlifyClient",
    "PackagingError",
    "SiteBundle",
    "SiteNotFoundError",
    "SiteOperations",
    "Submission",
    "await_deploy_ready",
    "build_site_files",
    "package_site",
    "resolve_site_id",
    "submit_archive",
]
