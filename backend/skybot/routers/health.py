from __future__ import annotations

from fastapi import APIRouter

from ..services.bot_runtime import get_runtime
from ..settings import settings

router = APIRouter()


@router.get("/", tags=["health"])
def health():
    chain = get_runtime().chain
    return {
        "message": "Skybot Slack assistant API",
        "version": "1.0.0",
        "status": "running",
        "port": settings.port,
        "environment": settings.environment,
        "dynamodb": "configured" if settings.ddb_table_name else "missing",
        "slack": "enabled" if settings.slack_enabled else "disabled",
        "aiProviders": [p.name for p in chain.providers if p.configured],
        "endpoints": [
            "POST /api/integrations/slack/events",
            "POST /api/integrations/slack/interactions",
            "POST /api/integrations/slack/threads/deactivate",
        ],
    }
