import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor

from collectors import chatgpt, claude, copilot, gemini
from config import Settings
from models import ApiError, ServiceResult, ServiceUsageData

log = logging.getLogger(__name__)

ALL_SERVICES = ("claude", "chatgpt", "github-copilot", "gemini")

_COLLECTORS: dict[str, Callable[[Settings], ServiceUsageData]] = {
    "claude": claude.collect,
    "chatgpt": chatgpt.collect,
    "github-copilot": copilot.collect,
    "gemini": gemini.collect,
}


def available_services() -> list[str]:
    return list(_COLLECTORS)


def select_services(service: str | None) -> list[str]:
    if not service or service.lower() == "all":
        return list(ALL_SERVICES)
    return [service]


def fetch_service_usage(name: str, settings: Settings) -> ServiceResult:
    collect_fn = _COLLECTORS.get(name.lower())
    if collect_fn is None:
        supported = ", ".join(available_services())
        return ServiceResult(
            service=name,
            error=ApiError(
                f'Unknown service "{name}". Supported services: {supported}. '
                "Run 'agent-usage --help' for usage."
            ),
        )

    try:
        return ServiceResult(service=name, value=collect_fn(settings))
    except ApiError as exc:
        log.debug("Fetching %s failed: %s", name, exc.message)
        return ServiceResult(service=name, error=exc)


def fetch_services_in_parallel(names: list[str], settings: Settings) -> list[ServiceResult]:
    """Fetch every service concurrently; results keep the order of ``names``."""
    if not names:
        return []
    with ThreadPoolExecutor(max_workers=len(names)) as pool:
        return list(pool.map(lambda name: fetch_service_usage(name, settings), names))
