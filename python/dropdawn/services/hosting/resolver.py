"""Resolve a loosely specified site reference to the provider's site id.

Accepts a canonical id, the site name, its netlify.app URL, or a custom domain.
"""

import re

from dropdawn.logging import get_logger
from dropdawn.services.hosting.client import HostingApiError, NetlifyClient

logger = get_logger(__name__)

# RFC 4122 textual form, versions 1-5
SITE_ID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)

_SCHEME = re.compile(r"^https?://")
_PLATFORM_SUFFIX = re.compile(r"\.netlify\.app$")


def is_canonical_site_id(identifier: str) -> bool:
    return bool(SITE_ID_PATTERN.match(identifier))


def normalize_identifier(identifier: str) -> str:
    """Strip scheme, one trailing slash and the platform suffix.

    "https://my-site.netlify.app/" -> "my-site"
    """
    cleaned = _SCHEME.sub("", identifier)
    if cleaned.endswith("/"):
        cleaned = cleaned[:-1]
    return _PLATFORM_SUFFIX.sub("", cleaned)


def _matches(site: dict, identifier: str, cleaned: str) -> bool:
    ssl_url = site.get("ssl_url")
    return (
        site.get("id") == identifier
        or site.get("name") == identifier
        or site.get("name") == cleaned
        or site.get("url") == identifier
        or ssl_url == identifier
        or site.get("custom_domain") == identifier
        or bool(ssl_url and ssl_url in identifier)
    )


async def resolve_site_id(client: NetlifyClient, identifier: str) -> str | None:
    """Map an identifier to a canonical site id.

    Canonical ids are returned unchanged without a network call. Otherwise the
    token's site list is searched and the first match wins. Listing failures
    are treated as no match.
    """
    if is_canonical_site_id(identifier):
        return identifier

    try:
        sites = await client.list_sites()
    except (HostingApiError, ValueError) as e:
        logger.warning("hosting.resolve.failed", error_type=type(e).__name__)
        return None

    cleaned = normalize_identifier(identifier)
    for site in sites or []:
        if isinstance(site, dict) and _matches(site, identifier, cleaned):
            logger.info("hosting.resolve.matched", site_id=site["id"])
            return site["id"]

    logger.info("hosting.resolve.missed", identifier_chars=len(identifier))
    return None
