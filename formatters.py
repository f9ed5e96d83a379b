"""Text, TSV and JSON renderings of ServiceUsageData.

Text output is rich console markup; print it through a ``rich.console.Console``.
"""

import json
import re
from datetime import datetime
from typing import Any

from rich.markup import escape

from models import ServiceUsageData, UsageWindow
from rates import calculate_usage_rate, classify_usage_rate

TSV_HEADER = "SERVICE\tPLAN\tWINDOW\tUTILIZATION\tRATE\tRESETS_AT"

_TSV_UNSAFE = re.compile(r"[\t\n\r]")


def format_utilization(utilization: float) -> str:
    return f"{utilization:.2f}%"


def format_reset_time(resets_at: datetime | None) -> str:
    if resets_at is None:
        return "Not available"
    return resets_at.astimezone().strftime("%Y-%m-%d %H:%M:%S %Z")


def _rate_style(rate: float | None) -> str:
    if rate is None:
        return "bright_black"
    return classify_usage_rate(rate)


def format_usage_window(window: UsageWindow, now: datetime | None = None) -> str:
    rate = calculate_usage_rate(window.utilization, window.resets_at, window.period_duration_ms, now)
    style = _rate_style(rate)
    rate_display = "Not available" if rate is None else f"{rate:.2f}x rate"
    return (
        f"[bold]{escape(window.name)}[/bold]:\n"
        f"  Utilization: [{style}]{format_utilization(window.utilization)}[/{style}] ({rate_display})\n"
        f"  Resets at:   {format_reset_time(window.resets_at)}"
    )


def format_service_usage(data: ServiceUsageData, now: datetime | None = None) -> str:
    header = [f"[bold cyan]=== {escape(data.service)} Usage ===[/bold cyan]"]
    if data.plan_type:
        header.append(f"[bright_black]Plan: {escape(data.plan_type)}[/bright_black]")
    if data.metadata is not None:
        if data.metadata.limit_reached is True:
            header.append("[red]⚠ Rate limit reached[/red]")
        elif data.metadata.allowed is False:
            header.append("[red]⚠ Usage not allowed[/red]")

    windows = "\n\n".join(format_usage_window(window, now) for window in data.windows)
    return "\n".join(header) + "\n\n" + windows


def to_json_object(data: ServiceUsageData, window: str | None = None) -> dict[str, Any]:
    """camelCase JSON object, optionally keeping only windows whose name contains ``window``."""
    obj = data.model_dump(mode="json", by_alias=True, exclude_none=True)
    if window:
        needle = window.lower()
        obj["windows"] = [w for w in obj["windows"] if needle in w["name"].lower()]
    return obj


def format_service_usage_as_json(data: ServiceUsageData, window: str | None = None) -> str:
    return json.dumps(to_json_object(data, window), indent=2)


def _sanitize_tsv(value: str) -> str:
    return _TSV_UNSAFE.sub(" ", value)


def _tsv_rows(data: ServiceUsageData, now: datetime | None) -> list[str]:
    rows = []
    for window in data.windows:
        rate = calculate_usage_rate(window.utilization, window.resets_at, window.period_duration_ms, now)
        rows.append("\t".join([
            _sanitize_tsv(data.service),
            _sanitize_tsv(data.plan_type or "-"),
            _sanitize_tsv(window.name),
            f"{window.utilization:.2f}",
            "-" if rate is None else f"{rate:.2f}",
            window.resets_at.isoformat() if window.resets_at else "-",
        ]))
    return rows


def format_service_usage_as_tsv(data: list[ServiceUsageData], now: datetime | None = None) -> str:
    rows = [row for entry in data for row in _tsv_rows(entry, now)]
    return "\n".join([TSV_HEADER, *rows])
