"""Plugin API server - the authoritative store for routing configuration.

Serves the plugin-scoped JSON API that the admin clients talk to. In
production the same routes live under /plugins/<plugin_id>/api/v1 on the
Mattermost server; here they are mounted at /api/v1.

Routes:
    POST /api/v1/test            - Validate Bugsnag credentials
    GET  /api/v1/organizations   - Organizations visible to the token
    GET  /api/v1/projects        - Projects of an organization
    GET  /api/v1/collaborators   - Collaborators of an organization
    GET  /api/v1/channel-rules   - Project -> channel rules
    POST /api/v1/channel-rules   - Replace all rules ({mappings} or {rules})
    GET  /api/v1/user-mappings   - Mattermost <-> Bugsnag user mappings
    POST /api/v1/user-mappings   - Replace all user mappings

Every error answers ``{"error": ..., "message": ...}``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from bugsnag_admin.bugsnag import BugsnagClient
from bugsnag_admin.config import AdminConfig
from bugsnag_admin.conventions import (
    KV_CHANNEL_RULES,
    KV_USER_MAPPINGS,
    PLUGIN_API_PREFIX,
)
from bugsnag_admin.errors import ProviderError
from bugsnag_admin.models import (
    FlatChannelRule,
    UserMapping,
    from_flat_rules,
    mappings_from_wire,
    mappings_to_wire,
)
from bugsnag_admin.server.kv import FileKVStore, KVStore, MemoryKVStore

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[str, AdminConfig], BugsnagClient]

router = APIRouter(prefix=PLUGIN_API_PREFIX)


# --- Pydantic Models ---


class TestRequest(BaseModel):
    api_token: str | None = None
    organization_id: str | None = None


class ChannelRuleBody(BaseModel):
    channel_id: str = ""
    environments: list[str] = Field(default_factory=list)
    severities: list[str] = Field(default_factory=list)
    events: list[str] = Field(default_factory=list)


class FlatRuleBody(BaseModel):
    id: str = ""
    project_id: str = ""
    project_name: str = ""
    channel_id: str = ""
    channel_name: str = ""


class ChannelRulesPayload(BaseModel):
    mappings: dict[str, list[ChannelRuleBody]] | None = None
    rules: list[FlatRuleBody] | None = None


class UserMappingBody(BaseModel):
    mm_user_id: str = ""
    bugsnag_user_id: str = ""
    bugsnag_email: str = ""


class UserMappingsPayload(BaseModel):
    mappings: list[UserMappingBody] = Field(default_factory=list)


# --- Helpers ---


def _default_provider(token: str, config: AdminConfig) -> BugsnagClient:
    return BugsnagClient(token, base_url=config.bugsnag_api_url, timeout=config.timeout)


def _config(request: Request) -> AdminConfig:
    return request.app.state.config


def _kv(request: Request) -> KVStore:
    return request.app.state.kv


def _provider(request: Request, token: str | None = None) -> BugsnagClient:
    token = (token or _config(request).bugsnag_api_token).strip()
    if not token:
        raise HTTPException(status_code=401, detail="missing Bugsnag API token")
    try:
        return request.app.state.provider_factory(token, _config(request))
    except ValueError as exc:
        raise HTTPException(
            status_code=500, detail=f"failed to create Bugsnag client: {exc}"
        ) from exc


async def _organization_id(
    client: BugsnagClient, request: Request, explicit: str | None
) -> str | None:
    """Query/body org id > configured org id > first visible organization."""
    wanted = (explicit or "").strip() or _config(request).organization_id
    try:
        org = await client.resolve_organization(wanted)
    except ProviderError as exc:
        raise HTTPException(
            status_code=502, detail=f"failed to fetch organizations: {exc}"
        ) from exc
    return org.id if org else None


def _load(request: Request, key: str, label: str) -> Any:
    try:
        return _kv(request).get(key)
    except (OSError, ValueError) as exc:
        raise HTTPException(
            status_code=500, detail=f"failed to load {label}: {exc}"
        ) from exc


def _store(request: Request, key: str, label: str, value: Any) -> None:
    try:
        _kv(request).set(key, value)
    except (OSError, TypeError, ValueError) as exc:
        raise HTTPException(
            status_code=500, detail=f"failed to save {label}: {exc}"
        ) from exc


# --- Connection ---


@router.api_route("/test", methods=["GET", "POST"])
async def test_connection(
    request: Request, req: TestRequest | None = None
) -> dict[str, Any]:
    """Validate credentials by listing the projects they can see."""
    req = req or TestRequest()
    client = _provider(request, req.api_token)

    wanted = (req.organization_id or "").strip() or _config(request).organization_id
    try:
        if wanted:
            org_name = wanted
            projects = await client.get_projects(wanted)
        else:
            orgs = await client.get_organizations()
            if not orgs:
                return {
                    "status": "ok",
                    "message": "No organizations found. Check API token permissions.",
                }
            org_name = orgs[0].name or orgs[0].id
            projects = await client.get_projects(orgs[0].id)
    except ProviderError as exc:
        raise HTTPException(
            status_code=502, detail=f"failed to fetch projects: {exc}"
        ) from exc

    logger.info("Connection test ok: %s (%d projects)", org_name, len(projects))
    return {
        "status": "ok",
        "message": f"Connected to {org_name}. Found {len(projects)} project(s).",
        "organization": org_name,
        "project_count": len(projects),
        "projects": [p.name for p in projects],
    }


# --- Provider catalogs ---


@router.get("/organizations")
async def list_organizations(request: Request) -> dict[str, Any]:
    client = _provider(request)
    try:
        orgs = await client.get_organizations()
    except ProviderError as exc:
        raise HTTPException(
            status_code=502, detail=f"failed to fetch organizations: {exc}"
        ) from exc
    return {
        "organizations": [{"id": o.id, "name": o.name, "slug": o.slug} for o in orgs]
    }


@router.get("/projects")
async def list_projects(
    request: Request, organization_id: str | None = None
) -> dict[str, Any]:
    client = _provider(request)
    org_id = await _organization_id(client, request, organization_id)
    if org_id is None:
        return {"projects": [], "message": "No organizations found"}
    try:
        projects = await client.get_projects(org_id)
    except ProviderError as exc:
        raise HTTPException(
            status_code=502, detail=f"failed to fetch projects: {exc}"
        ) from exc
    return {
        "organization_id": org_id,
        "projects": [{"id": p.id, "name": p.name} for p in projects],
    }


@router.get("/collaborators")
async def list_collaborators(
    request: Request, organization_id: str | None = None
) -> dict[str, Any]:
    client = _provider(request)
    org_id = await _organization_id(client, request, organization_id)
    if org_id is None:
        return {"collaborators": [], "message": "No organizations found"}
    try:
        collaborators = await client.get_collaborators(org_id)
    except ProviderError as exc:
        raise HTTPException(
            status_code=502, detail=f"failed to fetch collaborators: {exc}"
        ) from exc
    return {
        "organization_id": org_id,
        "collaborators": [
            {"id": c.id, "name": c.name, "email": c.email} for c in collaborators
        ],
    }


# --- Channel rules ---


@router.get("/channel-rules")
async def get_channel_rules(request: Request) -> dict[str, Any]:
    stored = _load(request, KV_CHANNEL_RULES, "channel rules")
    if stored is not None and not isinstance(stored, dict):
        raise HTTPException(
            status_code=500, detail="failed to parse channel rules: not an object"
        )
    return {"mappings": mappings_to_wire(mappings_from_wire(stored))}


@router.api_route("/channel-rules", methods=["POST", "PUT"])
async def save_channel_rules(
    request: Request, payload: ChannelRulesPayload
) -> dict[str, Any]:
    """Replace the whole rule set. Accepts the canonical or the flat shape."""
    if payload.mappings is not None:
        mappings = mappings_from_wire(
            {
                pid: [r.model_dump() for r in rules]
                for pid, rules in payload.mappings.items()
            }
        )
    elif payload.rules is not None:
        mappings = from_flat_rules(
            FlatChannelRule.from_dict(r.model_dump()) for r in payload.rules
        )
    else:
        mappings = {}

    # Rules without a channel cannot route anything; projects left empty
    # mean "no rules".
    normalized = {
        pid: tuple(r for r in rules if r.channel_id)
        for pid, rules in mappings.items()
    }
    wire = mappings_to_wire({pid: rules for pid, rules in normalized.items() if rules})

    _store(request, KV_CHANNEL_RULES, "channel rules", wire)
    logger.info("Saved channel rules for %d project(s)", len(wire))
    return {"status": "ok", "mappings": wire}


# --- User mappings ---


@router.get("/user-mappings")
async def get_user_mappings(request: Request) -> dict[str, Any]:
    stored = _load(request, KV_USER_MAPPINGS, "user mappings")
    if stored is not None and not isinstance(stored, list):
        raise HTTPException(
            status_code=500, detail="failed to parse user mappings: not a list"
        )
    mappings = [UserMapping.from_dict(m) for m in stored or [] if isinstance(m, dict)]
    return {"mappings": [m.to_dict() for m in mappings]}


@router.api_route("/user-mappings", methods=["POST", "PUT"])
async def save_user_mappings(
    request: Request, payload: UserMappingsPayload
) -> dict[str, Any]:
    wire = [UserMapping.from_dict(m.model_dump()).to_dict() for m in payload.mappings]
    _store(request, KV_USER_MAPPINGS, "user mappings", wire)
    logger.info("Saved %d user mapping(s)", len(wire))
    return {"status": "ok", "mappings": wire}


# --- Application factory ---


def _error_body(message: str) -> dict[str, str]:
    return {"error": message, "message": message}


async def _http_error_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    if exc.status_code == 404 and detail == "Not Found":
        detail = "not found"
    if exc.status_code == 405:
        detail = "method not allowed"
    return JSONResponse(status_code=exc.status_code, content=_error_body(detail))


async def _validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    first = errors[0].get("msg", "invalid") if errors else "invalid"
    return JSONResponse(
        status_code=400, content=_error_body(f"invalid JSON payload: {first}")
    )


def create_app(
    config: AdminConfig | None = None,
    kv: KVStore | None = None,
    provider_factory: ProviderFactory | None = None,
) -> FastAPI:
    """Build the plugin API application.

    Args:
        config: Admin configuration. Loaded from the environment if None.
        kv: Storage backend. Defaults to a FileKVStore at config.store_path,
            or an in-memory store when store_path is "" or ":memory:".
        provider_factory: Builds a BugsnagClient for a token (injectable for
            tests).
    """
    if config is None:
        config = AdminConfig.from_env()
    if kv is None:
        kv = (
            MemoryKVStore()
            if config.uses_memory_store
            else FileKVStore(Path(config.store_path))
        )

    app = FastAPI(
        title="Bugsnag Admin",
        docs_url=f"{PLUGIN_API_PREFIX}/docs",
        openapi_url=f"{PLUGIN_API_PREFIX}/openapi.json",
    )
    app.state.config = config
    app.state.kv = kv
    app.state.provider_factory = provider_factory or _default_provider
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.include_router(router)
    logger.info("Plugin API ready (storage: %s)", type(kv).__name__)
    return app
