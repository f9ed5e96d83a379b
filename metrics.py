"""Prometheus exposition of a scrape's results."""

from datetime import datetime, timezone

from prometheus_client import CollectorRegistry, Gauge, generate_latest

from models import ServiceResult, ServiceUsageData


def build_prometheus_metrics(
    services: list[str],
    results: list[ServiceResult],
    now: datetime | None = None,
) -> str:
    """Render one scrape as Prometheus text.

    A fresh registry is used per call so nothing leaks between scrapes.
    """
    timestamp = int((now or datetime.now(timezone.utc)).timestamp())
    successes: list[ServiceUsageData] = [r.value for r in results if r.ok and r.value is not None]
    failures = [r for r in results if not r.ok]
    registry = CollectorRegistry()

    Gauge(
        "agent_usage_last_scrape_timestamp_seconds",
        "Time when the agent-usage scrape completed.",
        registry=registry,
    ).set(timestamp)

    succeeded = {r.service.lower(): r.value for r in results if r.ok}
    fetch_success = Gauge(
        "agent_usage_fetch_success",
        "Whether fetching usage for the service succeeded (1=true, 0=false).",
        ["service"],
        registry=registry,
    )
    for service in services:
        key = service.lower()
        data = succeeded.get(key)
        fetch_success.labels(service=data.service if data else key).set(1 if data else 0)

    if successes:
        last_fetch = Gauge(
            "agent_usage_last_fetch_timestamp_seconds",
            "Time when usage data was last fetched successfully.",
            ["service"],
            registry=registry,
        )
        utilization = Gauge(
            "agent_usage_utilization_ratio",
            "Utilization ratio (0-1) for each quota window.",
            ["service", "window", "plan_type"],
            registry=registry,
        )
        resets_at = None
        if any(w.resets_at is not None for d in successes for w in d.windows):
            resets_at = Gauge(
                "agent_usage_window_resets_at_timestamp_seconds",
                "Time when the usage window resets.",
                ["service", "window", "plan_type"],
                registry=registry,
            )
        for data in successes:
            last_fetch.labels(service=data.service).set(timestamp)
            plan = data.plan_type or ""
            for window in data.windows:
                labels = {"service": data.service, "window": window.name, "plan_type": plan}
                utilization.labels(**labels).set(window.utilization / 100)
                if resets_at is not None and window.resets_at is not None:
                    resets_at.labels(**labels).set(int(window.resets_at.timestamp()))

        with_metadata = [d for d in successes if d.metadata is not None]
        if any(d.metadata.allowed is not None for d in with_metadata):
            allowed = Gauge(
                "agent_usage_allowed",
                "Whether the account is currently allowed to make requests (1=true, 0=false).",
                ["service", "plan_type"],
                registry=registry,
            )
            for data in with_metadata:
                if data.metadata.allowed is not None:
                    allowed.labels(service=data.service, plan_type=data.plan_type or "").set(
                        1 if data.metadata.allowed else 0
                    )
        if any(d.metadata.limit_reached is not None for d in with_metadata):
            limit_reached = Gauge(
                "agent_usage_limit_reached",
                "Whether the usage limit has been reached (1=true, 0=false).",
                ["service", "plan_type"],
                registry=registry,
            )
            for data in with_metadata:
                if data.metadata.limit_reached is not None:
                    limit_reached.labels(service=data.service, plan_type=data.plan_type or "").set(
                        1 if data.metadata.limit_reached else 0
                    )

    if failures:
        Gauge(
            "agent_usage_fetch_failures",
            "Number of services that failed to return usage during the scrape.",
            registry=registry,
        ).set(len(failures))

    return generate_latest(registry).decode()
