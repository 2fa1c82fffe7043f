"""Response models for the notification-service control endpoints"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class FireResultResponse(BaseModel):
    """Outcome of firing one notification"""
    model_config = ConfigDict(from_attributes=True)

    record_id: str
    record_name: str
    outcome: str
    fired_at: datetime | None = None
    delivered: int = 0
    failed: int = 0
    skipped: int = 0
    deactivated: bool = False
    errors: list[str] = Field(default_factory=list)


class ServiceStatusResponse(BaseModel):
    """Poller state plus store counters"""
    running: bool
    poll_interval: float
    last_tick_at: datetime | None = None
    next_tick_at: datetime | None = None
    active_count: int | None = None
    total_notifications: int | None = None
    active_chats: int | None = None
    last_error: str | None = None


class ServiceActionResponse(BaseModel):
    success: bool = True
    message: str
    status: ServiceStatusResponse | None = None


class ProcessNowResponse(BaseModel):
    success: bool = True
    processed: int
    results: list[FireResultResponse]


class ManualSendResponse(BaseModel):
    success: bool
    message: str
    result: FireResultResponse
