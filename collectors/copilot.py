import logging
import subprocess
from datetime import datetime, timezone

from collectors import github_copilot
from collectors.github_copilot import premium_utilization
from collectors.http import request_json
from config import Settings
from models import ApiError, ServiceUsageData, UsageWindow
from periods import calculate_period_duration
from schemas import CopilotUsageResponse, validate_response

log = logging.getLogger(__name__)

SERVICE = "GitHub Copilot"
WINDOW_NAME = "Monthly Premium Interactions"

USAGE_API_URL = "https://api.github.com/copilot_internal/user"


def parse_reset_timestamp(value: str) -> datetime:
    reset = datetime.fromisoformat(value)
    if reset.tzinfo is None:
        return reset.replace(tzinfo=timezone.utc)
    return reset


def to_service_usage(response: CopilotUsageResponse) -> ServiceUsageData:
    premium = response.quota_snapshots.premium_interactions

    if premium.unlimited:
        window = UsageWindow(name=WINDOW_NAME, utilization=0, resets_at=None, period_duration_ms=0)
    else:
        reset_date = parse_reset_timestamp(response.quota_reset_date_utc)
        window = UsageWindow(
            name=WINDOW_NAME,
            utilization=premium_utilization(premium.entitlement, premium.remaining),
            resets_at=reset_date,
            period_duration_ms=calculate_period_duration(reset_date),
        )

    return ServiceUsageData(service=SERVICE, plan_type=response.copilot_plan, windows=[window])


def _gh_auth_token(settings: Settings) -> str | None:
    try:
        raw = subprocess.run(
            [settings.gh_path, "auth", "token"],
            capture_output=True, text=True, timeout=settings.cli_timeout,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        log.debug("gh auth token unavailable: %s", exc)
        return None
    if raw.returncode != 0:
        log.debug("gh auth token failed: %s", raw.stderr.strip())
        return None

    token = raw.stdout.strip()
    # Copilot's internal API rejects classic personal access tokens
    if not token or token.startswith("ghp_"):
        return None
    return token


def collect(settings: Settings) -> ServiceUsageData:
    if settings.github_session:
        return github_copilot.collect(settings)

    token = settings.copilot_token or _gh_auth_token(settings)
    if not token:
        raise ApiError("No GitHub Copilot credentials found. Run 'gh auth login' to authenticate.")

    body = request_json(
        USAGE_API_URL,
        headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
        timeout=settings.request_timeout,
    )
    response = validate_response(CopilotUsageResponse, body)
    try:
        return to_service_usage(response)
    except ValueError as exc:
        raise ApiError(f"Invalid reset date: {exc}", body=body) from exc
