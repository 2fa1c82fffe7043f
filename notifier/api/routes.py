"""Control endpoints for the notification service: status, start/stop, process-now, manual send"""

import logging

from fastapi import APIRouter, Depends, Request

from notifier.api.schemas import (
    FireResultResponse,
    ManualSendResponse,
    ProcessNowResponse,
    ServiceActionResponse,
    ServiceStatusResponse,
)
from notifier.scheduler.engine import FireResult, FireOutcome
from notifier.scheduler.lifecycle import ServiceLifecycle, ServiceStatus
from notifier.scheduler.manual import ManualTrigger
from notifier.store.base import NotificationStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["notification-service"])


def get_lifecycle(request: Request) -> ServiceLifecycle:
    return request.app.state.lifecycle


def get_manual_trigger(request: Request) -> ManualTrigger:
    return request.app.state.manual


def get_store(request: Request) -> NotificationStore:
    return request.app.state.store


async def _status_response(lifecycle: ServiceLifecycle, store: NotificationStore) -> ServiceStatusResponse:
    status: ServiceStatus = await lifecycle.status()
    total = chats = None
    try:
        total = await store.count_notifications()
        chats = await store.count_chats()
    except Exception as e:
        logger.warning(f"Could not read store counters: {e}")
    return ServiceStatusResponse(
        running=status.running,
        poll_interval=status.poll_interval,
        last_tick_at=status.last_tick_at,
        next_tick_at=status.next_tick_at,
        active_count=status.active_count,
        total_notifications=total,
        active_chats=chats,
        last_error=status.last_error,
    )


def _result_response(result: FireResult) -> FireResultResponse:
    return FireResultResponse(**result.to_dict())


@router.get("/status", response_model=ServiceStatusResponse)
async def get_status(
    lifecycle: ServiceLifecycle = Depends(get_lifecycle),
    store: NotificationStore = Depends(get_store),
) -> ServiceStatusResponse:
    return await _status_response(lifecycle, store)


@router.post("/start", response_model=ServiceActionResponse)
async def start_service(
    lifecycle: ServiceLifecycle = Depends(get_lifecycle),
    store: NotificationStore = Depends(get_store),
) -> ServiceActionResponse:
    already = lifecycle.running
    await lifecycle.start()
    message = "Notification service is already running" if already else "Notification service started"
    return ServiceActionResponse(message=message, status=await _status_response(lifecycle, store))


@router.post("/stop", response_model=ServiceActionResponse)
async def stop_service(
    lifecycle: ServiceLifecycle = Depends(get_lifecycle),
    store: NotificationStore = Depends(get_store),
) -> ServiceActionResponse:
    was_running = lifecycle.running
    await lifecycle.stop()
    message = "Notification service stopped" if was_running else "Notification service is not running"
    return ServiceActionResponse(message=message, status=await _status_response(lifecycle, store))


@router.post("/process-now", response_model=ProcessNowResponse)
async def process_now(lifecycle: ServiceLifecycle = Depends(get_lifecycle)) -> ProcessNowResponse:
    results = await lifecycle.process_now()
    return ProcessNowResponse(
        processed=len(results),
        results=[_result_response(r) for r in results],
    )


@router.post("/notifications/{notification_id}/send", response_model=ManualSendResponse)
async def send_notification(
    notification_id: str,
    manual: ManualTrigger = Depends(get_manual_trigger),
) -> ManualSendResponse:
    result = await manual.fire_now(notification_id)
    success = result.outcome in (FireOutcome.FIRED, FireOutcome.PARTIAL)
    message = "Notification sent successfully" if success else "Notification could not be delivered"
    return ManualSendResponse(success=success, message=message, result=_result_response(result))
