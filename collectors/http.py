import json
import logging
import urllib.error
import urllib.request
from typing import Any

from models import ApiError

log = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


def request_json(
    url: str,
    *,
    headers: dict[str, str],
    method: str = "GET",
    payload: Any = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> Any:
    """Send a request and decode the JSON body, raising ApiError on any failure."""
    data = None
    if payload is not None:
        data = json.dumps(payload).encode()
        headers = {"Content-Type": "application/json", **headers}

    req = urllib.request.Request(url, data=data, headers=headers, method=method)
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            status = resp.status
            raw = resp.read()
    except urllib.error.HTTPError as exc:
        body = exc.read().decode(errors="replace")
        log.debug("%s %s -> %s", method, url, exc.code)
        raise ApiError(f"API request failed: {exc.code} {exc.reason}", exc.code, body) from exc
    except (urllib.error.URLError, OSError) as exc:
        log.debug("%s %s failed: %s", method, url, exc)
        raise ApiError(f"Network error: {exc}") from exc

    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ApiError(f"Invalid JSON response: {exc}", status, raw.decode(errors="replace")) from exc
