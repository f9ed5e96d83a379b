"""GitHub Copilot usage from the github.com web entitlement endpoint.

Authenticates with a ``user_session`` cookie instead of an API token; the
reset date comes back as a bare ``YYYY-MM-DD``.
"""

import urllib.parse

from collectors.http import request_json
from config import Settings
from models import ApiError, ServiceUsageData, UsageWindow
from periods import calculate_period_duration, parse_reset_date
from schemas import GitHubCopilotUsageResponse, validate_response

SERVICE = "GitHub Copilot"
WINDOW_NAME = "Monthly Premium Interactions"

ENTITLEMENT_URL = "https://github.com/github-copilot/chat/entitlement"
USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/129.0.0.0 Safari/537.36"
)


def premium_utilization(entitlement: float, remaining: float) -> float:
    if entitlement == 0:
        return 0.0
    return round((entitlement - remaining) / entitlement * 100, 2)


def to_service_usage(response: GitHubCopilotUsageResponse) -> ServiceUsageData:
    reset_date = parse_reset_date(response.quotas.reset_date)
    utilization = premium_utilization(
        response.quotas.limits.premium_interactions,
        response.quotas.remaining.premium_interactions,
    )

    return ServiceUsageData(
        service=SERVICE,
        plan_type=response.plan,
        windows=[
            UsageWindow(
                name=WINDOW_NAME,
                utilization=utilization,
                resets_at=reset_date,
                period_duration_ms=calculate_period_duration(reset_date),
            )
        ],
    )


def collect(settings: Settings) -> ServiceUsageData:
    if not settings.github_session:
        raise ApiError("No GitHub session configured. Set AGENT_USAGE_GITHUB_SESSION.")

    session = urllib.parse.unquote(settings.github_session)
    try:
        body = request_json(
            ENTITLEMENT_URL,
            headers={
                "Accept": "application/json",
                "X-Requested-With": "XMLHttpRequest",
                "GitHub-Verified-Fetch": "true",
                "User-Agent": USER_AGENT,
                "Cookie": f"user_session={session}",
            },
            timeout=settings.request_timeout,
        )
    except ApiError as exc:
        if exc.status in (401, 403):
            raise ApiError(
                "Authentication failed. Please ensure your GitHub session token is valid.",
                exc.status,
                exc.body,
            ) from exc
        raise

    response = validate_response(GitHubCopilotUsageResponse, body)
    try:
        return to_service_usage(response)
    except ValueError as exc:
        raise ApiError(str(exc), body=body) from exc
