"""Shared test fixtures."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from config import Settings

NOW = datetime(2025, 3, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def settings() -> Settings:
    """Settings with explicit tokens so no local credential files are read."""
    return Settings(
        _env_file=None,
        claude_token="claude-token",
        chatgpt_token="chatgpt-token",
        copilot_token="gho_copilot-token",
        github_session="",
        gemini_token="gemini-token",
    )


@pytest.fixture
def claude_payload() -> dict:
    return {
        "five_hour": {"utilization": 1, "resets_at": "2025-03-15T15:00:00+00:00"},
        "seven_day": {"utilization": 20, "resets_at": "2025-03-18T00:00:00+00:00"},
        "seven_day_opus": {"utilization": 5, "resets_at": None},
        "seven_day_oauth_apps": None,
    }


@pytest.fixture
def chatgpt_payload() -> dict:
    return {
        "plan_type": "plus",
        "rate_limit": {
            "allowed": True,
            "limit_reached": False,
            "primary_window": {
                "used_percent": 12.5,
                "limit_window_seconds": 18000,
                "reset_after_seconds": 3600,
                "reset_at": 1742043600,
            },
            "secondary_window": {
                "used_percent": 40,
                "limit_window_seconds": 604800,
                "reset_after_seconds": 86400,
                "reset_at": 1742256000,
            },
        },
        "credits": None,
    }


@pytest.fixture
def copilot_payload() -> dict:
    return {
        "quota_reset_date_utc": "2025-03-31T00:00:00Z",
        "copilot_plan": "individual",
        "quota_snapshots": {
            "premium_interactions": {
                "entitlement": 1500,
                "remaining": 1392,
                "percent_remaining": 92.8,
                "unlimited": False,
            }
        },
    }


@pytest.fixture
def github_copilot_payload() -> dict:
    return {
        "licenseType": "licensed_full",
        "plan": "pro",
        "quotas": {
            "limits": {"premiumInteractions": 300},
            "remaining": {"premiumInteractions": 225, "premiumInteractionsPercentage": 75},
            "resetDate": "2025-03-31",
        },
        "trial": {"eligible": False},
    }


@pytest.fixture
def gemini_payload() -> dict:
    return {
        "buckets": [
            {"modelId": "gemini-2.5-pro", "remainingFraction": 0.8, "resetTime": "2025-03-16T00:00:00Z", "tokenType": "input"},
            {"modelId": "gemini-2.5-pro", "remainingFraction": 0.5, "resetTime": "2025-03-16T00:00:00Z", "tokenType": "output"},
            {"modelId": "gemini-2.5-flash", "remainingFraction": 0.9, "resetTime": "2025-03-16T00:00:00Z"},
        ]
    }
