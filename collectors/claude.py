import json
import logging
import subprocess
from pathlib import Path

from pydantic import ValidationError

from collectors.claude_coalesce import coalesce_claude_usage_response
from collectors.http import request_json
from config import Settings
from models import ApiError, ServiceUsageData, UsageWindow
from schemas import ClaudeUsageResponse, UsageMetric

log = logging.getLogger(__name__)

SERVICE = "Claude"

USAGE_API_URL = "https://api.anthropic.com/api/oauth/usage"
BETA_VERSION = "oauth-2025-04-20"
KEYCHAIN_SERVICE = "Claude Code-credentials"
CREDENTIALS_PATH = Path.home() / ".claude" / ".credentials.json"

_HOUR_MS = 60 * 60 * 1000

# Fixed window lengths; the API only reports utilization and reset time
PERIOD_DURATIONS = {
    "five_hour": 5 * _HOUR_MS,
    "seven_day": 7 * 24 * _HOUR_MS,
    "seven_day_oauth_apps": 7 * 24 * _HOUR_MS,
    "seven_day_opus": 7 * 24 * _HOUR_MS,
}


def _window(name: str, key: str, metric: UsageMetric) -> UsageWindow:
    return UsageWindow(
        name=name,
        utilization=metric.utilization,
        resets_at=metric.resets_at,
        period_duration_ms=PERIOD_DURATIONS[key],
    )


def to_service_usage(response: ClaudeUsageResponse) -> ServiceUsageData:
    windows = [
        _window("5-Hour Usage", "five_hour", response.five_hour),
        _window("7-Day Usage", "seven_day", response.seven_day),
    ]
    if response.seven_day_oauth_apps is not None:
        windows.append(_window("7-Day OAuth Apps", "seven_day_oauth_apps", response.seven_day_oauth_apps))
    windows.append(_window("7-Day Opus Usage", "seven_day_opus", response.seven_day_opus))
    return ServiceUsageData(service=SERVICE, windows=windows)


def _token_from_credentials(raw: str) -> str | None:
    try:
        creds = json.loads(raw)
    except json.JSONDecodeError:
        return None
    if not isinstance(creds, dict):
        return None
    return (creds.get("claudeAiOauth") or {}).get("accessToken")


def _read_access_token(settings: Settings) -> str | None:
    if settings.claude_token:
        return settings.claude_token

    if CREDENTIALS_PATH.exists():
        token = _token_from_credentials(CREDENTIALS_PATH.read_text())
        if token:
            return token
        log.debug("No accessToken in %s", CREDENTIALS_PATH)

    try:
        raw = subprocess.run(
            ["security", "find-generic-password", "-s", KEYCHAIN_SERVICE, "-w"],
            capture_output=True, text=True, timeout=settings.cli_timeout,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        log.debug("Keychain lookup unavailable: %s", exc)
        return None
    if raw.returncode != 0:
        log.debug("Keychain lookup failed: %s", raw.stderr.strip())
        return None
    return _token_from_credentials(raw.stdout.strip())


def parse_response(data: object) -> ClaudeUsageResponse:
    """Validate a usage payload, falling back to coalescing array-shaped ones."""
    try:
        return ClaudeUsageResponse.model_validate(data)
    except ValidationError as exc:
        coalesced = coalesce_claude_usage_response(data)
        if coalesced is None:
            raise ApiError(f"Invalid response format: {exc}", body=data) from exc
        log.debug("Coalesced array-shaped Claude usage response")
        return coalesced


def collect(settings: Settings) -> ServiceUsageData:
    token = _read_access_token(settings)
    if not token:
        raise ApiError(
            "No Claude credentials found. Set AGENT_USAGE_CLAUDE_TOKEN or log in with Claude Code."
        )

    body = request_json(
        USAGE_API_URL,
        headers={
            "Authorization": f"Bearer {token}",
            "anthropic-beta": BETA_VERSION,
        },
        timeout=settings.request_timeout,
    )
    return to_service_usage(parse_response(body))
