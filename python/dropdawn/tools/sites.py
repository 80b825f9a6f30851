"""Hosting tools: thin wrappers over SiteOperations."""

from pydantic import BaseModel, Field

from dropdawn.services.hosting import SiteOperations
from dropdawn.tools.base import Tool, ToolContext

SITE_ID_DESCRIPTION = (
    "The Netlify Site ID (UUID) OR the site name/URL. Required if updating an existing site."
)


def site_operations(ctx: ToolContext) -> SiteOperations:
    settings = ctx.settings
    return SiteOperations(
        ctx.http_client,
        settings.netlify_access_token,
        poll_attempts=settings.deploy_poll_attempts,
        poll_interval_s=settings.deploy_poll_interval_s,
        deploy_timeout_s=settings.deploy_timeout_s,
        sleep=ctx.sleep,
    )


class StaticSiteParams(BaseModel):
    html: str = Field(
        ..., description="The full HTML content of the landing page, including <head> and <body>."
    )
    css: str | None = Field(None, description="The CSS styles for the landing page.")
    js: str | None = Field(None, description="The JavaScript logic for the landing page.")
    project_name: str | None = Field(
        None, alias="projectName", description="A suggested name for the project (optional)."
    )
    site_id: str | None = Field(None, alias="siteId", description=SITE_ID_DESCRIPTION)

    model_config = {"populate_by_name": True}


class FullStackParams(StaticSiteParams):
    functions: dict[str, str] | None = Field(
        None,
        description=(
            'Backend Netlify Functions. Key = function name (e.g. "api"), '
            "Value = JS code (exports.handler = ...)."
        ),
    )


class SiteIdParams(BaseModel):
    site_id: str = Field(..., alias="siteId", description="The Netlify Site ID.")

    model_config = {"populate_by_name": True}


class UpdateDomainParams(SiteIdParams):
    new_domain: str = Field(
        ...,
        alias="newDomain",
        min_length=1,
        description='The new subdomain name (e.g., "my-brand" for my-brand.netlify.app).',
    )


async def static_site(params: StaticSiteParams, ctx: ToolContext) -> dict:
    return await site_operations(ctx).deploy_static_site(
        params.html, params.css, params.js, site_id=params.site_id
    )


async def full_stack_app(params: FullStackParams, ctx: ToolContext) -> dict:
    return await site_operations(ctx).deploy_full_stack_app(
        params.html, params.css, params.js, params.functions, site_id=params.site_id
    )


async def update_domain(params: UpdateDomainParams, ctx: ToolContext) -> dict:
    return await site_operations(ctx).rename_site(params.site_id, params.new_domain)


async def rollback(params: SiteIdParams, ctx: ToolContext) -> dict:
    return await site_operations(ctx).rollback_site(params.site_id)


async def delete(params: SiteIdParams, ctx: ToolContext) -> dict:
    return await site_operations(ctx).delete_site(params.site_id)


STATIC_SITE_TOOL = Tool(
    name="staticSiteGenerator",
    description=(
        "Generate and deploy a STATIC landing page or site to Netlify (HTML/CSS/JS). "
        'Use "fullStackAppGenerator" for apps with backend logic.'
    ),
    params_model=StaticSiteParams,
    handler=static_site,
)

FULL_STACK_TOOL = Tool(
    name="fullStackAppGenerator",
    description=(
        "Generate and deploy a Full Stack App (Frontend HTML/JS + Backend Serverless "
        "Functions) to Netlify. Use this for apps requiring server-side logic."
    ),
    params_model=FullStackParams,
    handler=full_stack_app,
)

UPDATE_DOMAIN_TOOL = Tool(
    name="updateSiteDomain",
    description=(
        "Update the subdomain (name) of a Netlify site. Use this to change the URL "
        'prefix (e.g., from "fluffy-unicorn" to "my-brand").'
    ),
    params_model=UpdateDomainParams,
    handler=update_domain,
)

ROLLBACK_TOOL = Tool(
    name="rollbackSite",
    description="Rollback a Netlify site to the previous successful deploy.",
    params_model=SiteIdParams,
    handler=rollback,
)

DELETE_SITE_TOOL = Tool(
    name="deleteLandingPage",
    description="Delete a deployed landing page from Netlify using its Site ID.",
    params_model=SiteIdParams,
    handler=delete,
)
