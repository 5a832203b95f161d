"""
Application entrypoint: FastAPI read surface plus the XMPP bot and the
reminder scheduler, all on one event loop.

Startup order: database pool -> schema -> contact directory -> XMPP
channel -> reminder scheduler. Any failure before the channel connects is
fatal.
"""

import asyncio
import os
import signal
import sys
import time
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request

from whatsup.config import settings
from whatsup.db.pool import DatabasePoolManager
from whatsup.db.schema import ensure_schema
from whatsup.infrastructure.observability.logging import get_logger, log_request, setup_logging
from whatsup.infrastructure.xmpp.client import XmppClient, XmppPresenceChannel
from whatsup.jobs.reminder_job import ReminderJob, start_reminder_scheduler
from whatsup.middleware.request_context import RequestContextMiddleware
from whatsup.repositories.status_repository import PostgresStatusStore
from whatsup.routes import health, status
from whatsup.services.context import ServiceContext
from whatsup.services.ingestion_service import IngestionService
from whatsup.services.subscription_service import SubscriptionService

setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)


async def _watch_shutdown(app: FastAPI, context: ServiceContext) -> None:
    """Stop the HTTP server once a component asks for shutdown."""
    await context.shutdown_event.wait()

    server = getattr(app.state, "server", None)
    if server is not None:
        server.should_exit = True
    else:
        os.kill(os.getpid(), signal.SIGTERM)


async def _cancel(task: asyncio.Task | None) -> None:
    if task is None:
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the service context, start the bot, tear everything down in reverse."""

    logger.info(
        "Application starting",
        environment=settings.environment,
        admission_policy=settings.ADMISSION_POLICY,
        store_error_policy=settings.STORE_ERROR_POLICY,
    )

    db_pool = DatabasePoolManager(settings)
    context = ServiceContext(settings=settings, store=PostgresStatusStore(db_pool))
    client: XmppClient | None = None
    scheduler_task: asyncio.Task | None = None
    watcher_task: asyncio.Task | None = None
    startup_tasks = []

    try:
        await db_pool.initialize()
        startup_tasks.append("database_pool")

        if settings.AUTO_CREATE_SCHEMA:
            await ensure_schema(db_pool)

        await context.directory.load(context.store)
        startup_tasks.append("directory")

        client = XmppClient(context, SubscriptionService(context), IngestionService(context))
        context.channel = XmppPresenceChannel(client)
        client.start()
        startup_tasks.append("xmpp")

        reminder_job = ReminderJob(context)
        scheduler_task = asyncio.create_task(start_reminder_scheduler(reminder_job))
        watcher_task = asyncio.create_task(_watch_shutdown(app, context))
        startup_tasks.append("reminder_scheduler")

        logger.info("All services initialized successfully", services=startup_tasks)

    except Exception as e:
        logger.error("Failed to initialize services", error=str(e), completed_tasks=startup_tasks)
        await _cancel(scheduler_task)
        if "database_pool" in startup_tasks:
            await db_pool.close()
        raise

    app.state.db_pool = db_pool
    app.state.context = context
    app.state.reminder_job = reminder_job

    yield

    logger.info("Application shutting down", reason=context.shutdown_reason)

    await _cancel(watcher_task)
    await _cancel(scheduler_task)

    # Mark shutdown first so the disconnect below is not reported as a failure
    context.shutdown_event.set()
    context.session_ready = False

    try:
        logger.info("Disconnecting from XMPP server")
        await asyncio.wait_for(client.disconnect(), timeout=5.0)
    except Exception as e:
        logger.warning("Error disconnecting from XMPP server", error=str(e))

    await db_pool.close()
    logger.info("All services closed")


app = FastAPI(
    title="whatsup",
    description="Presence-aware team status bot",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(RequestContextMiddleware)

# Health routes first so /healthz is not taken for a contact page
app.include_router(health.router)
app.include_router(status.router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log HTTP requests with timing."""
    start_time = time.time()
    response = await call_next(request)
    process_time = (time.time() - start_time) * 1000

    log_request(
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(process_time, 2),
    )
    return response


def main() -> None:
    """CLI entrypoint."""
    config = uvicorn.Config(app, host=settings.HTTP_HOST, port=settings.HTTP_PORT, log_config=None)
    server = uvicorn.Server(config)
    app.state.server = server

    server.run()

    context = getattr(app.state, "context", None)
    if context is not None and context.shutdown_reason:
        logger.error("Exiting after fatal error", reason=context.shutdown_reason)
        sys.exit(1)


if __name__ == "__main__":
    main()
