"""Themis Workflow: Main FastAPI Application.

Two-tier project approval workflow, change request lifecycle and
time-driven notification engine.
"""

import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api import api_router
from .core import (
    Clock,
    Settings,
    SystemClock,
    close_storage,
    create_storage_engine,
    get_settings,
    init_storage,
)
from .core.dependencies import WorkflowContext
from .jobs.notification_poller import EntityStoreSnapshotSource, NotificationPoller, SnapshotSource
from .schemas import ErrorResponse
from .services import (
    ApplyConflict,
    ApprovalService,
    AuthorizationDenied,
    ChangeRequestService,
    EntityStore,
    IdentityProvider,
    InMemoryEntityStore,
    InvalidTransition,
    KeyValueStore,
    NotFound,
    NotificationRuleEngine,
    NotificationStore,
    PersistenceFailed,
    RuleEngineConfig,
    SentKeyLedger,
    SqlKeyValueStore,
    StaticIdentityProvider,
    ValidationFailed,
    WorkflowError,
)

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    AuthorizationDenied: status.HTTP_403_FORBIDDEN,
    InvalidTransition: status.HTTP_409_CONFLICT,
    ApplyConflict: status.HTTP_409_CONFLICT,
    ValidationFailed: status.HTTP_422_UNPROCESSABLE_ENTITY,
    NotFound: status.HTTP_404_NOT_FOUND,
    PersistenceFailed: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def create_app(
    settings: Settings | None = None,
    *,
    kv_store: KeyValueStore | None = None,
    entity_store: EntityStore | None = None,
    identity: IdentityProvider | None = None,
    clock: Clock | None = None,
    snapshot_source: SnapshotSource | None = None,
) -> FastAPI:
    """Wire the services and build the application.

    Collaborators not supplied fall back to in-memory implementations; the
    key-value store falls back to the SQL table at ``settings.database_url``.
    """
    settings = settings or get_settings()
    clock = clock or SystemClock()
    entity_store = entity_store or InMemoryEntityStore()
    identity = identity or StaticIdentityProvider()

    storage_engine = None
    if kv_store is None:
        storage_engine = create_storage_engine(settings.database_url, settings.database_echo)
        kv_store = SqlKeyValueStore(storage_engine)

    notifications = NotificationStore(kv_store, max_per_user=settings.max_notifications_per_user)
    rule_engine = NotificationRuleEngine(
        RuleEngineConfig.from_settings(settings),
        sent_keys=SentKeyLedger(kv_store),
    )
    change_requests = ChangeRequestService(entity_store, clock)
    context = WorkflowContext(
        entity_store=entity_store,
        identity=identity,
        clock=clock,
        notifications=notifications,
        approvals=ApprovalService(
            entity_store,
            identity,
            clock,
            change_requests=change_requests,
            notifications=notifications,
            rule_engine=rule_engine,
        ),
        change_requests=change_requests,
        poller=NotificationPoller(
            engine=rule_engine,
            store=notifications,
            source=snapshot_source or EntityStoreSnapshotSource(entity_store, identity),
            clock=clock,
            interval_seconds=settings.notification_poll_interval_seconds,
            settings=settings,
        ),
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan: startup and shutdown."""
        if storage_engine is not None:
            init_storage(storage_engine)
        yield
        # The poller never outlives the application
        await context.poller.stop()
        if storage_engine is not None:
            close_storage(storage_engine)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="""
        ## Themis Workflow API

        Review projects and change requests through the Sub-PMO / Main-PMO
        approval flow and read the notifications it produces.

        ### Authentication

        Authentication happens upstream. Identify the caller with the
        `X-Actor-Id` header.
        """,
        openapi_url=f"{settings.api_prefix}/openapi.json",
        docs_url=f"{settings.api_prefix}/docs",
        redoc_url=f"{settings.api_prefix}/redoc",
        lifespan=lifespan,
    )
    app.state.workflow = context

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.exception_handler(WorkflowError)
    async def workflow_error_handler(request: Request, exc: WorkflowError):
        """Surface a returned workflow error with its HTTP status."""
        return JSONResponse(
            status_code=ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST),
            content=ErrorResponse.from_error(exc).model_dump(),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        error_detail = str(exc)
        if settings.debug or settings.environment != "production":
            error_detail = f"{exc}\n{traceback.format_exc()}"
        logger.error(f"Unhandled exception: {error_detail}")

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorResponse(
                error="internal_error",
                message=f"An unexpected error occurred: {str(exc)[:200]}",
                details=[],
            ).model_dump(),
        )

    @app.get("/health", tags=["health"])
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "version": settings.app_version,
            "poller_running": context.poller.running,
        }

    app.include_router(api_router, prefix=settings.api_prefix)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "themis_workflow.main:app",
        host="0.0.0.0",
        port=8000,
        reload=get_settings().debug,
    )
