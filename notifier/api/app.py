"""FastAPI application for the notification-service control surface"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from notifier import __version__
from notifier.api.routes import router
from notifier.core.errors import NotFoundError, RuleValidationError, StoreError
from notifier.scheduler.lifecycle import ServiceLifecycle
from notifier.scheduler.manual import ManualTrigger
from notifier.service import NotifierService
from notifier.store.base import NotificationStore


def configure_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"success": False, "detail": exc.message})

    @app.exception_handler(RuleValidationError)
    async def invalid_rule_handler(request: Request, exc: RuleValidationError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"success": False, "detail": exc.message})

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
        return JSONResponse(
            status_code=503,
            content={"success": False, "detail": f"Notification store unavailable: {exc.message}"},
        )


def create_app(
    lifecycle: ServiceLifecycle,
    manual: ManualTrigger,
    store: NotificationStore,
    prefix: str = "/notification-service",
    service: NotifierService | None = None,
) -> FastAPI:
    """
    Build the control app around already-constructed components.

    When `service` is given its open()/close() run in the app lifespan.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        if service is not None:
            await service.open()
        try:
            yield
        finally:
            if service is not None:
                await service.close()

    app = FastAPI(title="Notification service", version=__version__, lifespan=lifespan)
    app.state.lifecycle = lifecycle
    app.state.manual = manual
    app.state.store = store
    configure_exception_handlers(app)
    app.include_router(router, prefix=prefix)
    return app


def create_service_app(service: NotifierService) -> FastAPI:
    return create_app(
        lifecycle=service.lifecycle,
        manual=service.manual,
        store=service.store,
        prefix=service.config.api.prefix,
        service=service,
    )
