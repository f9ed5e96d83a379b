import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from collectors.http import request_json
from config import Settings
from models import ApiError, ServiceUsageData, UsageWindow
from schemas import (
    GeminiCredentials,
    GeminiProjectsResponse,
    GeminiQuotaBucket,
    GeminiQuotaResponse,
    validate_response,
)

log = logging.getLogger(__name__)

SERVICE = "Gemini"

BASE_DIR = Path.home() / ".gemini"
CREDENTIALS_PATH = BASE_DIR / "oauth_creds.json"

# Undocumented internal API used by the Gemini CLI
QUOTA_API_URL = "https://cloudcode-pa.googleapis.com/v1internal:retrieveUserQuota"
PROJECTS_API_URL = "https://cloudresourcemanager.googleapis.com/v1/projects"

# Gemini quotas reset daily
PERIOD_MS = 24 * 60 * 60 * 1000
EXPIRY_SKEW_MS = 60_000


@dataclass(frozen=True)
class ModelQuota:
    model_id: str
    lowest_remaining_fraction: float
    reset_time: datetime | None


@dataclass(frozen=True)
class QuotaPool:
    model_ids: tuple[str, ...]
    remaining_fraction: float
    reset_time: datetime | None


def parse_reset_time(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        reset = datetime.fromisoformat(value)
    except ValueError:
        return None
    if reset.tzinfo is None:
        return reset.replace(tzinfo=timezone.utc)
    return reset


def format_model_name(model_id: str) -> str:
    """Display name for a model ID: gemini-2.5-pro -> Gemini 2.5 Pro."""
    parts = []
    for part in model_id.split("-"):
        if part[:1].isdigit():
            parts.append(part)
        else:
            parts.append(part[:1].upper() + part[1:])
    return " ".join(parts)


def format_pool_name(model_ids: list[str]) -> str:
    """Name a pool of models, factoring out a shared leading word.

    ["gemini-2.5-flash", "gemini-2.5-pro"] -> "Gemini 2.5 Flash, 2.5 Pro"
    """
    names = [format_model_name(model_id) for model_id in sorted(set(model_ids))]
    if len(names) == 1:
        return names[0]

    prefix = names[0].split(" ", 1)[0]
    suffixes = []
    for name in names:
        head, _, rest = name.partition(" ")
        if head != prefix or not rest:
            return ", ".join(names)
        suffixes.append(rest)
    return f"{prefix} {', '.join(suffixes)}"


def group_buckets_by_model(buckets: list[GeminiQuotaBucket]) -> list[ModelQuota]:
    """One quota per model, keeping the lowest remaining fraction.

    Input-token buckets are usually the binding constraint, so the most
    pessimistic bucket wins; the first one seen wins on ties.
    """
    by_model: dict[str, ModelQuota] = {}
    for bucket in buckets:
        existing = by_model.get(bucket.model_id)
        if existing is None or bucket.remaining_fraction < existing.lowest_remaining_fraction:
            by_model[bucket.model_id] = ModelQuota(
                model_id=bucket.model_id,
                lowest_remaining_fraction=bucket.remaining_fraction,
                reset_time=parse_reset_time(bucket.reset_time),
            )
    return list(by_model.values())


def _pool_key(quota: ModelQuota) -> str:
    reset = quota.reset_time.astimezone(timezone.utc).isoformat() if quota.reset_time else "none"
    return f"{quota.lowest_remaining_fraction:.6f}|{reset}"


def group_models_into_pools(quotas: list[ModelQuota]) -> list[QuotaPool]:
    pools: dict[str, list[ModelQuota]] = {}
    for quota in quotas:
        pools.setdefault(_pool_key(quota), []).append(quota)

    return [
        QuotaPool(
            model_ids=tuple(sorted({q.model_id for q in members})),
            remaining_fraction=members[0].lowest_remaining_fraction,
            reset_time=members[0].reset_time,
        )
        for members in pools.values()
    ]


def to_usage_window(pool: QuotaPool) -> UsageWindow:
    # remaining 0.6 means 40% used
    utilization = (1 - pool.remaining_fraction) * 100
    return UsageWindow(
        name=format_pool_name(list(pool.model_ids)),
        utilization=round(utilization, 2),
        resets_at=pool.reset_time,
        period_duration_ms=PERIOD_MS,
    )


def to_service_usage(response: GeminiQuotaResponse, plan_type: str | None = None) -> ServiceUsageData:
    pools = group_models_into_pools(group_buckets_by_model(response.buckets))
    return ServiceUsageData(
        service=SERVICE,
        plan_type=plan_type,
        windows=[to_usage_window(pool) for pool in pools],
    )


def _read_access_token(settings: Settings) -> str:
    if settings.gemini_token:
        return settings.gemini_token
    if not CREDENTIALS_PATH.exists():
        raise ApiError("No Gemini credentials found. Run 'gemini' to authenticate.")

    try:
        creds = GeminiCredentials.model_validate(json.loads(CREDENTIALS_PATH.read_text()))
    except (json.JSONDecodeError, OSError, ValidationError) as exc:
        raise ApiError(f"Could not read Gemini credentials from {CREDENTIALS_PATH}: {exc}") from exc

    if creds.expiry_date < time.time() * 1000 + EXPIRY_SKEW_MS:
        raise ApiError("Gemini authentication expired. Run 'gemini' to re-authenticate.")
    return creds.access_token


def discover_project(token: str, timeout: float) -> str | None:
    """Find the Gemini CLI's Cloud project, if any. Best effort."""
    try:
        body = request_json(PROJECTS_API_URL, headers={"Authorization": f"Bearer {token}"}, timeout=timeout)
        projects = validate_response(GeminiProjectsResponse, body).projects or []
    except ApiError as exc:
        log.debug("Gemini project discovery failed: %s", exc)
        return None

    for project in projects:
        if project.project_id.startswith("gen-lang-client"):
            return project.project_id
        if (project.labels or {}).get("generative-language") == "true":
            return project.project_id
    return None


def collect(settings: Settings) -> ServiceUsageData:
    token = _read_access_token(settings)
    project_id = discover_project(token, settings.request_timeout)

    try:
        body = request_json(
            QUOTA_API_URL,
            headers={"Authorization": f"Bearer {token}"},
            method="POST",
            payload={"project": project_id} if project_id else {},
            timeout=settings.request_timeout,
        )
    except ApiError as exc:
        if exc.status == 401:
            raise ApiError("Gemini authentication expired. Run 'gemini' to re-authenticate.", 401) from exc
        raise

    response = validate_response(GeminiQuotaResponse, body)
    if not response.buckets:
        raise ApiError("No quota data available. Token may be invalid or expired.")
    return to_service_usage(response)
