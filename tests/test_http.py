"""Tests for the shared JSON request helper."""

from __future__ import annotations

import io
import json
import urllib.error
from unittest.mock import MagicMock, patch

import pytest

from collectors.http import request_json
from models import ApiError

URL = "https://api.example.com/usage"


def _response(body: bytes, status: int = 200) -> MagicMock:
    resp = MagicMock(status=status)
    resp.read.return_value = body
    cm = MagicMock()
    cm.__enter__.return_value = resp
    return cm


class TestRequestJson:
    def test_decodes_json(self):
        with patch("collectors.http.urllib.request.urlopen", return_value=_response(b'{"ok": true}')) as mock_open:
            assert request_json(URL, headers={"Authorization": "Bearer t"}, timeout=3) == {"ok": True}

        req = mock_open.call_args.args[0]
        assert req.get_method() == "GET"
        assert req.get_header("Authorization") == "Bearer t"
        assert req.data is None
        assert mock_open.call_args.kwargs["timeout"] == 3

    def test_post_payload(self):
        with patch("collectors.http.urllib.request.urlopen", return_value=_response(b"{}")) as mock_open:
            request_json(URL, headers={}, method="POST", payload={"project": "p"})

        req = mock_open.call_args.args[0]
        assert req.get_method() == "POST"
        assert json.loads(req.data) == {"project": "p"}
        assert req.get_header("Content-type") == "application/json"

    def test_http_error_keeps_status_and_body(self):
        error = urllib.error.HTTPError(URL, 429, "Too Many Requests", {}, io.BytesIO(b"slow down"))
        with patch("collectors.http.urllib.request.urlopen", side_effect=error):
            with pytest.raises(ApiError) as exc_info:
                request_json(URL, headers={})

        assert exc_info.value.message == "API request failed: 429 Too Many Requests"
        assert exc_info.value.status == 429
        assert exc_info.value.body == "slow down"

    def test_network_error(self):
        error = urllib.error.URLError("connection refused")
        with patch("collectors.http.urllib.request.urlopen", side_effect=error):
            with pytest.raises(ApiError, match="Network error") as exc_info:
                request_json(URL, headers={})
        assert exc_info.value.status is None

    def test_invalid_json(self):
        with patch("collectors.http.urllib.request.urlopen", return_value=_response(b"<html>")):
            with pytest.raises(ApiError, match="Invalid JSON response") as exc_info:
                request_json(URL, headers={})
        assert exc_info.value.status == 200
        assert exc_info.value.body == "<html>"
