from typing import Optional
from fastapi import FastAPI
from app.config import Settings, settings as default_settings
from app.errors import install_error_handlers
from app.logging_config import configure_logging
from app.middleware.auth import TokenVerifier
from app.middleware.cors import FunctionCORSMiddleware
from app.middleware.limits import BodySizeLimitMiddleware
from app.routers import function
from app.services.destination import DestinationResolver
from app.services.storage import StorageBackend, build_storage
import structlog

logger = structlog.get_logger()


def create_function_app(
    settings: Optional[Settings] = None,
    storage: Optional[StorageBackend] = None,
    token_verifier: Optional[TokenVerifier] = None
) -> FastAPI:
    """
    Build the authenticated upload function that proxies images into the
    object store.

    Args:
        settings: Configuration, defaults to the environment
        storage: Storage backend, built from settings when omitted
        token_verifier: ID token verifier, built from settings when omitted
    """
    settings = settings or default_settings
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Profile Picture Upload Function",
        description="Authenticated image upload into object storage",
        version="1.0.0"
    )

    app.state.settings = settings
    app.state.storage = storage or build_storage(settings)
    app.state.token_verifier = token_verifier or TokenVerifier.from_settings(settings)
    if not app.state.token_verifier.configured:
        logger.warning("No ID token verification key configured; every upload will be rejected")
    app.state.resolver = DestinationResolver.from_settings(
        settings,
        document_marker="",
        per_caller_folder=True,
        fixed_extension=".jpg"
    )

    app.add_middleware(BodySizeLimitMiddleware, max_bytes=settings.max_upload_bytes)
    app.add_middleware(
        FunctionCORSMiddleware,
        allow_origin=settings.function_cors_origin,
        max_age=settings.function_cors_max_age
    )

    install_error_handlers(app)
    app.include_router(function.router)

    logger.info("Upload function configured", storage=type(app.state.storage).__name__)
    return app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.function:create_function_app",
        factory=True,
        host=default_settings.host,
        port=default_settings.port
    )
