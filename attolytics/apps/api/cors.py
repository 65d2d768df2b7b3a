from __future__ import annotations

import re

from attolytics.apps.api.response import API_VERSION
from attolytics.schema.model import Schema


ALLOWED_METHODS = "POST, OPTIONS"
PREFLIGHT_MAX_AGE_S = 600
_EVENTS_PATH = re.compile(rf"^/{API_VERSION}/apps/([^/]+)/events$")


def tenant_from_path(path: str) -> str | None:
    match = _EVENTS_PATH.match(path)
    return match.group(1) if match else None


def allowed_origin(schema: Schema, tenant_id: str | None, request_origin: str | None) -> str | None:
    # Each tenant declares one origin (or "*") allowed to post events from a browser.
    if not tenant_id:
        return None
    tenant = schema.tenant(tenant_id)
    if tenant is None:
        return None
    configured = tenant.access_control_allow_origin
    if configured == "*":
        return "*"
    if request_origin and request_origin == configured:
        return configured
    return None


def cors_headers(schema: Schema, tenant_id: str | None, request_origin: str | None) -> dict[str, str]:
    origin = allowed_origin(schema, tenant_id, request_origin)
    if origin is None:
        return {}
    headers = {"Access-Control-Allow-Origin": origin}
    if origin != "*":
        headers["Vary"] = "Origin"
    return headers
