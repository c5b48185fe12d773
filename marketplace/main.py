"""FastAPI application entry point.

This module initialises the FastAPI app, configures logging and
registers API routes.  The `uvicorn` ASGI server can point to
``marketplace.main:app`` to serve the application.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from .config.app_config import get_app_config
from .controllers.auth_controller import router as auth_router
from .controllers.catalog_controller import router as catalog_router
from .controllers.chat_controller import router as chat_router
from .controllers.chat_controller import ws_router as chat_ws_router
from .controllers.profile_controller import router as profile_router
from .utils.error_handler import MarketplaceError, marketplace_exception_handler
from .utils.logger import setup_logging


def create_app() -> FastAPI:
    """Create and configure a FastAPI application."""
    app_config = get_app_config()
    setup_logging(app_config)

    app = FastAPI(title="Marketplace Chat", version="0.1.0", debug=app_config.app_debug)

    # Enable CORS for all origins; adjust in production as needed
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(MarketplaceError, marketplace_exception_handler)

    app.include_router(auth_router)
    app.include_router(profile_router)
    app.include_router(catalog_router)
    app.include_router(chat_router)
    app.include_router(chat_ws_router)

    @app.get("/health", tags=["Health"])
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        logger.debug("Health check invoked")
        return {"status": "ok", "env": app_config.app_env}

    return app


# Create an application instance for ASGI servers
app = create_app()
