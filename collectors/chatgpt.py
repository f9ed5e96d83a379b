import json
import logging
from datetime import datetime, timezone
from pathlib import Path

from collectors.http import request_json
from config import Settings
from models import ApiError, ServiceUsageData, UsageMetadata, UsageWindow
from schemas import ChatGPTUsageResponse, RateLimitWindow, validate_response

log = logging.getLogger(__name__)

SERVICE = "ChatGPT"

USAGE_API_URL = "https://chatgpt.com/backend-api/wham/usage"
AUTH_PATH = Path.home() / ".codex" / "auth.json"


def to_usage_window(name: str, window: RateLimitWindow) -> UsageWindow:
    return UsageWindow(
        name=name,
        utilization=window.used_percent,
        resets_at=datetime.fromtimestamp(window.reset_at, tz=timezone.utc),
        period_duration_ms=window.limit_window_seconds * 1000,
    )


def to_service_usage(response: ChatGPTUsageResponse) -> ServiceUsageData:
    rate_limit = response.rate_limit
    return ServiceUsageData(
        service=SERVICE,
        plan_type=response.plan_type,
        windows=[
            to_usage_window("Primary Window (~5 hours)", rate_limit.primary_window),
            to_usage_window("Secondary Window (~7 days)", rate_limit.secondary_window),
        ],
        metadata=UsageMetadata(
            allowed=rate_limit.allowed,
            limit_reached=rate_limit.limit_reached,
        ),
    )


def _read_access_token(settings: Settings) -> str | None:
    if settings.chatgpt_token:
        return settings.chatgpt_token
    if not AUTH_PATH.exists():
        return None
    try:
        auth = json.loads(AUTH_PATH.read_text())
    except (json.JSONDecodeError, OSError) as exc:
        log.debug("Could not read %s: %s", AUTH_PATH, exc)
        return None
    tokens = auth.get("tokens") if isinstance(auth, dict) else None
    if isinstance(tokens, dict) and isinstance(tokens.get("access_token"), str):
        return tokens["access_token"]
    return None


def collect(settings: Settings) -> ServiceUsageData:
    token = _read_access_token(settings)
    if not token:
        raise ApiError("No ChatGPT credentials found. Set AGENT_USAGE_CHATGPT_TOKEN or log in with Codex.")

    body = request_json(
        USAGE_API_URL,
        headers={"Authorization": f"Bearer {token}", "Accept": "*/*"},
        timeout=settings.request_timeout,
    )
    return to_service_usage(validate_response(ChatGPTUsageResponse, body))
