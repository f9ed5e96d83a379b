"""Tests for Gemini quota pooling and the Gemini collector."""

from __future__ import annotations

import json
import time
from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from collectors import gemini
from collectors.gemini import (
    ModelQuota,
    format_model_name,
    format_pool_name,
    group_buckets_by_model,
    group_models_into_pools,
)
from models import ApiError
from schemas import GeminiQuotaBucket, GeminiQuotaResponse

RESET = datetime(2025, 3, 16, tzinfo=timezone.utc)


def bucket(model_id: str, fraction: float, reset: str | None = "2025-03-16T00:00:00Z") -> GeminiQuotaBucket:
    return GeminiQuotaBucket(model_id=model_id, remaining_fraction=fraction, reset_time=reset)


class TestNames:
    @pytest.mark.parametrize(
        "model_id, expected",
        [
            ("gemini-2.5-pro", "Gemini 2.5 Pro"),
            ("gemini-2.0-flash-lite", "Gemini 2.0 Flash Lite"),
            ("imagen", "Imagen"),
        ],
    )
    def test_format_model_name(self, model_id, expected):
        assert format_model_name(model_id) == expected

    def test_pool_name_factors_shared_prefix(self):
        assert format_pool_name(["gemini-2.5-pro", "gemini-2.5-flash"]) == "Gemini 2.5 Flash, 2.5 Pro"

    def test_pool_name_deduplicates(self):
        assert format_pool_name(["gemini-2.5-pro", "gemini-2.5-pro"]) == "Gemini 2.5 Pro"

    def test_pool_name_without_shared_prefix(self):
        assert format_pool_name(["imagen-3", "gemini-2.5-pro"]) == "Gemini 2.5 Pro, Imagen 3"

    def test_pool_name_single_word_falls_back(self):
        assert format_pool_name(["gemini", "gemini-2.5-pro"]) == "Gemini, Gemini 2.5 Pro"


class TestGrouping:
    def test_lowest_fraction_per_model(self):
        quotas = group_buckets_by_model([
            bucket("gemini-2.5-pro", 0.8),
            bucket("gemini-2.5-pro", 0.5),
            bucket("gemini-2.5-flash", 0.9),
        ])

        assert [q.model_id for q in quotas] == ["gemini-2.5-pro", "gemini-2.5-flash"]
        assert quotas[0].lowest_remaining_fraction == 0.5
        assert quotas[0].reset_time == RESET

    def test_first_bucket_wins_ties(self):
        (quota,) = group_buckets_by_model([
            bucket("gemini-2.5-pro", 0.5, "2025-03-16T00:00:00Z"),
            bucket("gemini-2.5-pro", 0.5, "2025-03-17T00:00:00Z"),
        ])
        assert quota.reset_time == RESET

    def test_unparseable_reset_is_none(self):
        (quota,) = group_buckets_by_model([bucket("gemini-2.5-pro", 0.5, "tomorrow")])
        assert quota.reset_time is None

    def test_models_with_equal_quota_share_a_pool(self):
        pools = group_models_into_pools([
            ModelQuota("gemini-2.5-pro", 0.6, RESET),
            ModelQuota("gemini-2.5-flash", 0.9, RESET),
            ModelQuota("gemini-2.0-flash", 0.6, RESET),
        ])

        assert [p.model_ids for p in pools] == [
            ("gemini-2.0-flash", "gemini-2.5-pro"),
            ("gemini-2.5-flash",),
        ]

    def test_fraction_key_uses_six_decimals(self):
        pools = group_models_into_pools([
            ModelQuota("a", 0.1234561, RESET),
            ModelQuota("b", 0.1234564, RESET),
            ModelQuota("c", 0.123457, RESET),
        ])
        assert [p.model_ids for p in pools] == [("a", "b"), ("c",)]

    def test_same_instant_in_other_offset_shares_pool(self):
        quotas = group_buckets_by_model([
            bucket("gemini-2.5-pro", 0.5, "2025-03-16T00:00:00Z"),
            bucket("gemini-2.5-flash", 0.5, "2025-03-16T01:00:00+01:00"),
        ])
        (pool,) = group_models_into_pools(quotas)
        assert format_pool_name(list(pool.model_ids)) == "Gemini 2.5 Flash, 2.5 Pro"

    def test_different_reset_times_split_pools(self):
        pools = group_models_into_pools([
            ModelQuota("a", 0.5, RESET),
            ModelQuota("b", 0.5, None),
        ])
        assert len(pools) == 2


class TestToServiceUsage:
    def test_pools_become_windows(self, gemini_payload):
        data = gemini.to_service_usage(GeminiQuotaResponse.model_validate(gemini_payload))

        assert data.service == "Gemini"
        assert [w.name for w in data.windows] == ["Gemini 2.5 Pro", "Gemini 2.5 Flash"]
        assert [w.utilization for w in data.windows] == [50, 10]
        assert all(w.period_duration_ms == 86_400_000 for w in data.windows)
        assert data.windows[0].resets_at == RESET

    def test_remaining_fraction_to_utilization(self):
        response = GeminiQuotaResponse(buckets=[bucket("gemini-2.5-pro", 0.6)])
        (window,) = gemini.to_service_usage(response).windows
        assert window.utilization == 40


class TestCollect:
    def test_posts_discovered_project(self, settings, gemini_payload):
        def fake_request(url, **kwargs):
            if url == gemini.PROJECTS_API_URL:
                return {"projects": [
                    {"projectId": "other", "labels": {}},
                    {"projectId": "gen-lang-client-123"},
                ]}
            return gemini_payload

        with patch("collectors.gemini.request_json", side_effect=fake_request) as mock_request:
            data = gemini.collect(settings)

        assert len(data.windows) == 2
        quota_call = mock_request.call_args
        assert quota_call.args[0] == gemini.QUOTA_API_URL
        assert quota_call.kwargs["method"] == "POST"
        assert quota_call.kwargs["payload"] == {"project": "gen-lang-client-123"}
        assert quota_call.kwargs["headers"]["Authorization"] == "Bearer gemini-token"

    def test_project_by_label(self, settings, gemini_payload):
        def fake_request(url, **kwargs):
            if url == gemini.PROJECTS_API_URL:
                return {"projects": [{"projectId": "mine", "labels": {"generative-language": "true"}}]}
            return gemini_payload

        with patch("collectors.gemini.request_json", side_effect=fake_request) as mock_request:
            gemini.collect(settings)
        assert mock_request.call_args.kwargs["payload"] == {"project": "mine"}

    def test_project_discovery_failure_is_ignored(self, settings, gemini_payload):
        def fake_request(url, **kwargs):
            if url == gemini.PROJECTS_API_URL:
                raise ApiError("API request failed: 403 Forbidden", 403, "")
            return gemini_payload

        with patch("collectors.gemini.request_json", side_effect=fake_request) as mock_request:
            gemini.collect(settings)
        assert mock_request.call_args.kwargs["payload"] == {}

    def test_empty_buckets(self, settings):
        with patch("collectors.gemini.request_json", side_effect=[{}, {"buckets": []}]):
            with pytest.raises(ApiError, match="No quota data available"):
                gemini.collect(settings)

    def test_unauthorized(self, settings):
        error = ApiError("API request failed: 401 Unauthorized", 401, "")
        with patch("collectors.gemini.request_json", side_effect=[{}, error]):
            with pytest.raises(ApiError, match="re-authenticate") as exc_info:
                gemini.collect(settings)
        assert exc_info.value.status == 401

    def test_reads_credentials_file(self, settings, gemini_payload, tmp_path):
        creds = tmp_path / "oauth_creds.json"
        creds.write_text(json.dumps({
            "access_token": "file-token",
            "refresh_token": "refresh",
            "expiry_date": int(time.time() * 1000) + 3_600_000,
        }))
        settings.gemini_token = ""

        with patch.object(gemini, "CREDENTIALS_PATH", creds), \
                patch("collectors.gemini.request_json", side_effect=[{}, gemini_payload]) as mock_request:
            gemini.collect(settings)
        assert mock_request.call_args.kwargs["headers"]["Authorization"] == "Bearer file-token"

    def test_expired_credentials_file(self, settings, tmp_path):
        creds = tmp_path / "oauth_creds.json"
        creds.write_text(json.dumps({
            "access_token": "file-token",
            "refresh_token": "refresh",
            "expiry_date": int(time.time() * 1000) + 30_000,
        }))
        settings.gemini_token = ""

        with patch.object(gemini, "CREDENTIALS_PATH", creds), patch("collectors.gemini.request_json") as mock_request:
            with pytest.raises(ApiError, match="expired"):
                gemini.collect(settings)
        mock_request.assert_not_called()

    def test_missing_credentials_file(self, settings, tmp_path):
        settings.gemini_token = ""
        with patch.object(gemini, "CREDENTIALS_PATH", tmp_path / "missing.json"):
            with pytest.raises(ApiError, match="No Gemini credentials"):
                gemini.collect(settings)
