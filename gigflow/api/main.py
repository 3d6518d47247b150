"""
GigFlow API

FastAPI application for the gig marketplace: gig posting and search, bid
submission, the concurrency-safe hire transition, and a per-user WebSocket
channel for real-time events.

Run with:
    uvicorn gigflow.api.main:app --reload
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, WebSocket
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..config import ConfigManager, get_config
from ..marketplace.errors import MarketplaceError, wrap_exception
from ..utils.logger import get_logger
from .bid_endpoints import register_bid_routes
from .context import AppContext
from .gig_endpoints import register_gig_routes
from .identity import TOKEN_COOKIE

logger = get_logger(__name__)


def create_app(config: Optional[ConfigManager] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        config: Settings; defaults to the ConfigManager singleton

    Returns:
        FastAPI app whose lifespan opens and closes the AppContext
    """
    config = config or get_config()

    # Lifespan context manager for startup/shutdown
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        context = await AppContext.open(config)
        app.state.context = context
        try:
            yield
        finally:
            await context.close()

    app = FastAPI(title="GigFlow API", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
        allow_headers=["*"],
    )

    @app.exception_handler(MarketplaceError)
    async def marketplace_error_handler(request: Request, exc: MarketplaceError):
        if exc.status_code >= 500:
            logger.error(
                f"{request.method} {request.url.path} failed: {exc.message}",
                exc_info=exc.original_error or exc,
            )
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = [
            {
                "field": ".".join(str(part) for part in error["loc"][1:]),
                "message": error["msg"],
            }
            for error in exc.errors()
        ]
        return JSONResponse(
            status_code=400, content={"detail": "Validation failed", "errors": errors}
        )

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        error = wrap_exception(exc, f"{request.method} {request.url.path}")
        logger.error(f"Unexpected failure in {error.message}", exc_info=exc)
        return JSONResponse(
            status_code=error.status_code, content={"detail": "Internal server error"}
        )

    @app.get("/api/health")
    async def health(request: Request):
        """Health check endpoint."""
        return {
            "status": "OK",
            "message": "GigFlow API is running",
            "transactions": request.app.state.context.supports_transactions,
        }

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """Per-user real-time channel; token from ?token= or the token cookie."""
        context: AppContext = websocket.app.state.context
        token = websocket.query_params.get("token") or websocket.cookies.get(
            TOKEN_COOKIE
        )
        await context.websocket_manager.connect_client(websocket, token)

    register_gig_routes(app)
    register_bid_routes(app)

    return app


app = create_app()
