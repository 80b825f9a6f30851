"""Deployment packager.

Builds the file map for a site bundle and writes it into a deterministic zip
archive: fixed entry order, fixed timestamps and permissions, so identical
inputs always produce byte-identical archives.
"""

import io
import zipfile
from dataclasses import dataclass, field

FUNCTIONS_DIR = "netlify/functions"
NETLIFY_TOML = '[build]\n  functions = "netlify/functions"\n'

# Earliest timestamp the zip format can represent
_ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)
_FILE_MODE = 0o100644 << 16


class PackagingError(Exception):
    """The bundle could not be turned into an archive."""


@dataclass(frozen=True)
class SiteBundle:
    """In-memory sources for one deployment."""

    html: str
    css: str | None = None
    js: str | None = None
    functions: dict[str, str] | None = field(default=None)


def inject_assets(html: str, *, css: bool, js: bool, root_relative: bool = False) -> str:
    """Link style.css / script.js into the page unless it already references them."""
    prefix = "/" if root_relative else ""

    if css and "style.css" not in html:
        link = f'<link rel="stylesheet" href="{prefix}style.css">'
        if "</head>" in html:
            html = html.replace("</head>", f"    {link}\n</head>", 1)
        else:
            html = f"{link}\n{html}"

    if js and "script.js" not in html:
        script = f'<script src="{prefix}script.js"></script>'
        if "</body>" in html:
            html = html.replace("</body>", f"    {script}\n</body>", 1)
        else:
            html = f"{html}\n{script}"

    return html


def function_endpoints(functions: dict[str, str] | None) -> dict[str, str]:
    """Map each function's endpoint name (no `.js`) to its source, sorted by name.

    Raises PackagingError for names that are empty, hidden or contain a path,
    and when two names resolve to the same file (`api` and `api.js`).
    """
    endpoints: dict[str, str] = {}
    for name in sorted(functions or {}):
        cleaned = name.strip()
        if not cleaned or "/" in cleaned or cleaned.startswith("."):
            raise PackagingError(f"Invalid function name: {name!r}")
        endpoint = cleaned.removesuffix(".js")
        if endpoint in endpoints:
            raise PackagingError(f"Duplicate function name: {name!r}")
        endpoints[endpoint] = functions[name]
    return dict(sorted(endpoints.items()))


def build_site_files(bundle: SiteBundle, *, full_stack: bool = False) -> dict[str, str]:
    """Return the archive contents as path -> text, in archive order."""
    if not isinstance(bundle.html, str) or not bundle.html.strip():
        raise PackagingError("html is required")

    files = {
        "index.html": inject_assets(
            bundle.html,
            css=bool(bundle.css),
            js=bool(bundle.js),
            root_relative=full_stack,
        )
    }
    if bundle.css:
        files["style.css"] = bundle.css
    if bundle.js:
        files["script.js"] = bundle.js

    if full_stack:
        files["netlify.toml"] = NETLIFY_TOML
        for endpoint, source in function_endpoints(bundle.functions).items():
            files[f"{FUNCTIONS_DIR}/{endpoint}.js"] = source

    return files


def write_archive(files: dict[str, str]) -> bytes:
    buffer = io.BytesIO()
    try:
        with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for path, text in files.items():
                info = zipfile.ZipInfo(path, date_time=_ZIP_EPOCH)
                info.compress_type = zipfile.ZIP_DEFLATED
                info.external_attr = _FILE_MODE
                info.create_system = 3
                archive.writestr(info, text.encode("utf-8"))
    except (ValueError, UnicodeEncodeError, zipfile.BadZipFile) as e:
        raise PackagingError(f"Failed to build archive: {e}") from e
    return buffer.getvalue()


def package_site(bundle: SiteBundle, *, full_stack: bool = False) -> bytes:
    """Build the deployable zip archive for a bundle.

    Raises:
        PackagingError: If the bundle is invalid or the archive cannot be written.
    """
    return write_archive(build_site_files(bundle, full_stack=full_stack))
