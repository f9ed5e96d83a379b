import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import VERSION, Settings
from metrics import build_prometheus_metrics
from usage import fetch_services_in_parallel

log = logging.getLogger(__name__)


class MetricsPoller:
    """Periodically fetches every service and caches the rendered metrics."""

    def __init__(self, services: list[str], settings: Settings):
        self.services = services
        self.settings = settings
        self.metrics: str | None = None
        self.last_refresh: datetime | None = None
        self.errors: list[str] = []

    def refresh(self) -> None:
        results = fetch_services_in_parallel(self.services, self.settings)
        now = datetime.now(timezone.utc)

        errors = []
        for result in results:
            if not result.ok:
                errors.append(f"{result.service}: {result.error.message}")
                log.warning("Failed to fetch %s: %s", result.service, result.error.message)

        self.errors = errors
        self.last_refresh = now
        # Keep serving the previous scrape when everything failed
        if any(result.ok for result in results):
            self.metrics = build_prometheus_metrics(self.services, results, now)

    async def run(self) -> None:
        while True:
            try:
                await asyncio.to_thread(self.refresh)
            except Exception:
                log.exception("Metrics refresh failed")
            await asyncio.sleep(self.settings.interval)


def create_app(poller: MetricsPoller, poll: bool = True) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        task = None
        if poll:
            log.info("Polling every %ss for: %s", poller.settings.interval, ", ".join(poller.services))
            task = asyncio.create_task(poller.run())
        yield
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    app = FastAPI(title="agent-usage", version=VERSION, lifespan=lifespan)
    app.state.poller = poller

    @app.exception_handler(StarletteHTTPException)
    async def not_found(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return JSONResponse({"error": "Not found"}, status_code=404)
        return JSONResponse({"error": exc.detail}, status_code=exc.status_code)

    @app.get("/health")
    async def health():
        healthy = poller.metrics is not None
        return JSONResponse(
            {
                "status": "ok" if healthy else "degraded",
                "version": VERSION,
                "lastRefresh": poller.last_refresh.isoformat() if poller.last_refresh else None,
                "services": poller.services,
                "errors": poller.errors,
            },
            status_code=200 if healthy else 503,
        )

    @app.get("/metrics")
    async def metrics():
        if poller.metrics is None:
            return PlainTextResponse("No data yet\n", status_code=503)
        return PlainTextResponse(poller.metrics, media_type=CONTENT_TYPE_LATEST)

    return app
