from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import httpx
from fastapi import APIRouter, Depends

from ..dependencies.services import dynamics_service
from ..services.dynamics365 import Dynamics365Service, DynamicsError

router = APIRouter(prefix="/health")

PROBE_EMAIL = "healthcheck@example.com"


@router.get("")
def health() -> dict[str, str]:
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@router.get("/d365")
def dynamics_health(dynamics: Dynamics365Service = Depends(dynamics_service)) -> dict[str, Any]:
    config = dynamics.config
    checks: dict[str, Any] = {
        "D365_URL": bool(config.url),
        "D365_CLIENT_ID": bool(config.client_id),
        "D365_CLIENT_SECRET": bool(config.client_secret),
        "D365_TENANT_ID": bool(config.tenant_id),
        "D365_EMAIL_FIELD": config.email_field,
        "D365_PASSWORD_FIELD": config.password_field,
        "configured": dynamics.is_configured(),
    }
    if not dynamics.is_configured():
        return {"status": "not_configured", "checks": checks}

    try:
        dynamics.get_contact_by_email(PROBE_EMAIL)
    except (DynamicsError, httpx.HTTPError) as exc:
        checks["lookup"] = "failed"
        checks["error"] = str(exc)
        return {"status": "error", "checks": checks}

    checks["lookup"] = "ok"
    return {"status": "ok", "checks": checks}
