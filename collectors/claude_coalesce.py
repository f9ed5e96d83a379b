"""Best-effort reshaping of array-shaped Claude usage payloads.

Some responses arrive as a list of ``{name, percent, reset_at}``-style
entries instead of the named-field object. Labels are matched loosely so
that "5-Hour Usage", "five_hour" and "Five Hour" all land on the same window.
"""

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError

from schemas import ClaudeUsageResponse, UsageMetric

_TOKEN_SPLIT = re.compile(r"[^a-z0-9]+")

_MATCHERS: dict[str, tuple[str, ...]] = {
    "five_hour": ("five_hour", "five", "5", "5hour"),
    "seven_day": ("seven_day", "seven", "7", "week"),
    "seven_day_opus": ("seven_day_opus", "opus"),
    "seven_day_oauth_apps": ("seven_day_oauth_apps", "oauth"),
}
_REQUIRED = ("five_hour", "seven_day", "seven_day_opus")


class UsageWindowCandidate(BaseModel):
    model_config = ConfigDict(strict=True)

    window: str | None = None
    period: str | None = None
    name: str | None = None
    key: str | None = None
    utilization: float | None = None
    percentage: float | None = None
    percent: float | None = None
    resets_at: str | None = None
    reset_at: str | None = None
    resetsAt: str | None = None
    resetAt: str | None = None

    @property
    def label(self) -> str:
        return (self.window or self.period or self.name or self.key or "").lower()

    @property
    def resolved_utilization(self) -> float:
        for value in (self.utilization, self.percentage, self.percent):
            if value is not None:
                return value
        return 0

    @property
    def resolved_reset(self) -> str | None:
        for value in (self.resets_at, self.reset_at, self.resetsAt, self.resetAt):
            if value is not None:
                return value
        return None


_CANDIDATES = TypeAdapter(list[UsageWindowCandidate])


def tokenize_label(label: str) -> set[str]:
    return {token for token in _TOKEN_SPLIT.split(label) if token}


def _select_metric(
    candidates: list[UsageWindowCandidate], matchers: tuple[str, ...]
) -> dict[str, Any] | None:
    for candidate in candidates:
        label = candidate.label
        if not label:
            continue
        tokens = tokenize_label(label)
        if label in matchers or any(m in tokens for m in matchers):
            return {
                "utilization": candidate.resolved_utilization,
                "resets_at": candidate.resolved_reset,
            }
    return None


def coalesce_claude_usage_response(data: Any) -> ClaudeUsageResponse | None:
    """Rebuild a ClaudeUsageResponse from a list of loosely labelled windows.

    Returns None unless the 5-hour, 7-day and 7-day Opus windows are all
    recognised. The OAuth apps window is kept only when present.
    """
    if not isinstance(data, list):
        return None
    try:
        candidates = _CANDIDATES.validate_python(data)
    except ValidationError:
        return None

    metrics = {kind: _select_metric(candidates, matchers) for kind, matchers in _MATCHERS.items()}
    if any(metrics[kind] is None for kind in _REQUIRED):
        return None

    try:
        return ClaudeUsageResponse(
            **{kind: UsageMetric(**metric) for kind, metric in metrics.items() if metric is not None}
        )
    except ValidationError:
        # unparseable reset timestamp
        return None
