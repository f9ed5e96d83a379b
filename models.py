from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class UsageWindow(_Frozen):
    name: str  # e.g. "5-Hour Usage", "Gemini 2.5 Pro"
    utilization: float  # percentage, 0-100
    resets_at: datetime | None = None
    period_duration_ms: int = 0  # 0 = unlimited / no period


class UsageMetadata(_Frozen):
    allowed: bool | None = None
    limit_reached: bool | None = None


class ServiceUsageData(_Frozen):
    service: str
    plan_type: str | None = None
    windows: list[UsageWindow] = []
    metadata: UsageMetadata | None = None


class ApiError(Exception):
    """Failure to fetch or normalize a provider's usage."""

    def __init__(self, message: str, status: int | None = None, body: object = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.body = body


@dataclass(frozen=True)
class ServiceResult:
    service: str
    value: ServiceUsageData | None = None
    error: ApiError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.value is not None
