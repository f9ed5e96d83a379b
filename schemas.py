"""Raw provider response shapes, validated before any parsing happens."""

from datetime import datetime, timezone
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from models import ApiError

T = TypeVar("T", bound=BaseModel)


# Claude


class UsageMetric(BaseModel):
    utilization: float
    resets_at: datetime | None = None

    @field_validator("resets_at")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        # offset-less timestamps are UTC
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class ClaudeUsageResponse(BaseModel):
    five_hour: UsageMetric
    seven_day: UsageMetric
    seven_day_opus: UsageMetric
    seven_day_oauth_apps: UsageMetric | None = None


# ChatGPT / Codex


class RateLimitWindow(BaseModel):
    used_percent: float
    limit_window_seconds: int
    reset_after_seconds: float
    reset_at: float  # Unix seconds


class RateLimit(BaseModel):
    allowed: bool
    limit_reached: bool
    primary_window: RateLimitWindow
    secondary_window: RateLimitWindow


class ChatGPTUsageResponse(BaseModel):
    plan_type: str
    rate_limit: RateLimit
    credits: Any = None


# GitHub Copilot, token API (api.github.com/copilot_internal/user)


class PremiumInteractionsSnapshot(BaseModel):
    entitlement: float
    remaining: float
    percent_remaining: float
    unlimited: bool | None = None


class QuotaSnapshots(BaseModel):
    premium_interactions: PremiumInteractionsSnapshot


class CopilotUsageResponse(BaseModel):
    quota_reset_date_utc: str
    copilot_plan: str
    quota_snapshots: QuotaSnapshots


# GitHub Copilot, web entitlement API (camelCase keys)


class _Camel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GitHubCopilotQuotaLimits(_Camel):
    premium_interactions: float


class GitHubCopilotQuotaRemaining(_Camel):
    premium_interactions: float
    chat_percentage: float | None = None
    premium_interactions_percentage: float


class GitHubCopilotQuotas(_Camel):
    limits: GitHubCopilotQuotaLimits
    remaining: GitHubCopilotQuotaRemaining
    reset_date: str  # YYYY-MM-DD
    overages_enabled: bool | None = None


class GitHubCopilotTrial(_Camel):
    eligible: bool


class GitHubCopilotUsageResponse(_Camel):
    license_type: str
    quotas: GitHubCopilotQuotas
    plan: str
    trial: GitHubCopilotTrial | None = None


# Gemini


class GeminiQuotaBucket(_Camel):
    model_id: str
    remaining_fraction: float  # 0-1
    reset_time: str | None = None  # ISO 8601
    token_type: str | None = None  # "input" | "output"


class GeminiQuotaResponse(_Camel):
    buckets: list[GeminiQuotaBucket]


class GeminiProject(_Camel):
    project_id: str
    project_number: str | None = None
    labels: dict[str, str] | None = None


class GeminiProjectsResponse(_Camel):
    projects: list[GeminiProject] | None = None


class GeminiCredentials(BaseModel):
    access_token: str
    refresh_token: str
    id_token: str | None = None
    expiry_date: int  # milliseconds since epoch


def validate_response(schema: type[T], data: Any, status: int | None = None) -> T:
    try:
        return schema.model_validate(data)
    except ValidationError as exc:
        raise ApiError(f"Invalid response format: {exc}", status, data) from exc
