"""
RMG Portal Workflow Backend

FastAPI entry point. One API serves the helpdesk (tickets, approval chains,
specialist queues), timesheet approval, leave requests, the employee
directory and the in-app notification inbox.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pymongo.errors import PyMongoError

from .config.settings import settings
from .api.routes import api_router
from .api.middleware import CorrelationIdMiddleware, register_error_handlers
from .repositories.mongo_client import create_indexes, close_connection, health_check
from .scheduler.auto_close import get_scheduler, start_scheduler, stop_scheduler
from .services.ticket_service import TicketService
from .utils.logger import setup_logging, get_logger

setup_logging()
logger = get_logger(__name__)

APP_VERSION = "1.0.0"
API_PREFIX = "/api/v1"

# Route groups advertised on the root endpoint
MODULES = ["tickets", "approvals", "categories", "timesheets", "employees", "leaves", "notifications"]


def _prepare_database() -> None:
    """Indexes first, then pull the ticket counter up to the stored tickets"""
    try:
        create_indexes()
    except PyMongoError as e:
        logger.error(f"Index creation failed: {e}", extra={"action": "startup_indexes"})
        return

    try:
        counter = TicketService().sync_ticket_counter()
        logger.info(f"Ticket counter at {counter}", extra={"action": "startup_counter_sync"})
    except PyMongoError as e:
        logger.error(f"Ticket counter sync failed: {e}", extra={"action": "startup_counter_sync"})


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup: database preparation, then the auto-close job when enabled.
    Shutdown: stop the job and drop the Mongo client.
    """
    logger.info(f"RMG Portal backend {APP_VERSION} starting ({settings.environment})")
    _prepare_database()

    if settings.scheduler_enabled:
        start_scheduler()
    else:
        logger.info("Auto-close scheduler disabled by configuration")

    yield

    stop_scheduler()
    close_connection()
    logger.info("RMG Portal backend stopped")


def create_app() -> FastAPI:
    """Build the application: middleware, error envelope, routers, health"""
    docs_enabled = settings.debug
    application = FastAPI(
        title="RMG Portal Workflow API",
        description="Helpdesk, timesheet and leave workflows for the RMG portal",
        version=APP_VERSION,
        lifespan=lifespan,
        docs_url="/api/docs" if docs_enabled else None,
        redoc_url="/api/redoc" if docs_enabled else None,
        openapi_url="/api/openapi.json" if docs_enabled else None,
    )

    # Credentials cannot be combined with a wildcard origin
    wildcard = settings.cors_origins.strip() == "*"
    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if wildcard else settings.cors_origins_list,
        allow_credentials=not wildcard,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Correlation-Id"],
    )
    application.add_middleware(CorrelationIdMiddleware)

    register_error_handlers(application)
    application.include_router(api_router, prefix=API_PREFIX)

    @application.get("/health", tags=["Health"])
    async def health():
        """Liveness plus Mongo connectivity and auto-close job state"""
        mongo = health_check()
        return {
            "status": "healthy" if mongo.get("status") == "healthy" else "degraded",
            "version": APP_VERSION,
            "environment": settings.environment,
            "mongo": mongo,
            "auto_close": {
                "enabled": settings.scheduler_enabled,
                "running": settings.scheduler_enabled and get_scheduler().is_running,
                "after_days": settings.auto_close_after_days,
            },
        }

    @application.get("/", tags=["Health"])
    async def root():
        return {
            "name": "RMG Portal Workflow API",
            "version": APP_VERSION,
            "api": API_PREFIX,
            "modules": MODULES,
        }

    return application


app = create_app()
