"""
Main FastAPI application for the Slack sync service.
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging

from ..database import init_database, create_engine
from ..config import Config, set_config
from ..services.broadcaster import ConversationBroadcaster
from ..services.signature import SignatureVerifier
from ..services.slack_api import make_client_factory
from .slack import slack_router
from .tenants import tenants_router
from .conversations import conversations_router

logger = logging.getLogger(__name__)


def create_app(app_config: Config) -> FastAPI:
    """Create FastAPI application."""
    set_config(app_config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await app.state.broadcaster.close()

    app = FastAPI(
        title="Slack Sync",
        description="Synchronizes Slack conversations, reactions and threads into a per-tenant store",
        version="0.1.0",
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Initialize database
    engine, database_url = create_engine(app_config.database)
    init_database(engine, database_url)

    # Process-wide services shared by reference with every request
    app.state.broadcaster = ConversationBroadcaster(
        heartbeat_interval=app_config.stream.heartbeat_interval,
        queue_size=app_config.stream.queue_size
    )
    app.state.signature_verifier = SignatureVerifier(
        tolerance_seconds=app_config.slack.signature_tolerance_seconds
    )
    app.state.slack_client_factory = make_client_factory(
        base_url=app_config.slack.api_base_url,
        timeout=app_config.slack.request_timeout
    )

    app.include_router(slack_router, prefix="/api/slack", tags=["slack"])
    app.include_router(tenants_router, prefix="/api/tenants", tags=["tenants"])
    app.include_router(conversations_router, prefix="/api/tenants", tags=["conversations"])

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        logger.info(f"Invalid request to {request.url.path}: {exc.errors()}")
        return JSONResponse(status_code=400, content={"detail": "Invalid request body", "errors": jsonable_encoder(exc.errors())})

    @app.get("/health")
    async def health_check():
        return {"status": "healthy"}

    logger.info(f"Slack sync app created (ingress mode: {app_config.slack.ingress_mode})")
    return app
