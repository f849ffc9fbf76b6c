from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from hostpanel.modules.billing.domain.sweep import BillingScheduler, BillingSweep
from hostpanel.modules.notifications.domain.gateway import TemplateNotificationGateway
from hostpanel.modules.servers.api.v1.servers import router as servers_router
from hostpanel.shared.core.config import get_settings, reload_settings_from_environment
from hostpanel.shared.core.error_governance import handle_exception
from hostpanel.shared.core.exceptions import HostPanelException
from hostpanel.shared.core.http import close_http_client, init_http_client
from hostpanel.shared.core.logging import setup_logging
from hostpanel.shared.db.session import get_engine, get_session_maker

setup_logging()
settings = get_settings()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    global settings
    settings = reload_settings_from_environment()
    logger.info("app_starting", app_name=settings.APP_NAME)

    await init_http_client()

    scheduler: BillingScheduler | None = None
    if settings.BILLING_SCHEDULER_ENABLED and not settings.TESTING:
        session_maker = get_session_maker()
        sweep = BillingSweep(session_maker, TemplateNotificationGateway(session_maker))
        scheduler = BillingScheduler(sweep)
        scheduler.start()
    else:
        logger.info(
            "billing_scheduler_skipped",
            reason="testing" if settings.TESTING else "disabled",
        )
    app.state.billing_scheduler = scheduler

    yield

    logger.info("app_shutting_down")
    if scheduler is not None:
        scheduler.stop()
    await close_http_client()
    await get_engine().dispose()


app = FastAPI(title=settings.APP_NAME, version=settings.VERSION, lifespan=lifespan)
app.include_router(servers_router, prefix="/api/v1/servers")


@app.exception_handler(HostPanelException)
async def hostpanel_exception_handler(
    request: Request, exc: HostPanelException
) -> JSONResponse:
    """Handle custom application exceptions."""
    return handle_exception(request, exc)


@app.get("/health", tags=["Lifecycle"])
async def health(request: Request) -> dict[str, object]:
    scheduler = getattr(request.app.state, "billing_scheduler", None)
    return {
        "status": "ok",
        "version": settings.VERSION,
        "billing_scheduler": scheduler.get_status() if scheduler else None,
    }
