from pathlib import Path
from typing import Optional
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from app.config import Settings, settings as default_settings
from app.errors import install_error_handlers
from app.logging_config import configure_logging
from app.middleware.limits import BodySizeLimitMiddleware
from app.routers import upload
from app.services.destination import DestinationResolver
from app.services.local_storage import LocalStorage
import structlog

logger = structlog.get_logger()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the local disk upload server."""
    settings = settings or default_settings
    configure_logging(settings.log_level)

    # Uploaded files are served from here, so it must exist before mounting
    uploads_dir = Path(settings.uploads_dir)
    uploads_dir.mkdir(parents=True, exist_ok=True)

    app = FastAPI(
        title="Profile Upload Server",
        description="Stores profile images and application documents on local disk",
        version="1.0.0"
    )

    # Shared handles, created once per process
    app.state.settings = settings
    app.state.storage = LocalStorage(str(uploads_dir), settings.base_url)
    app.state.resolver = DestinationResolver.from_settings(settings)

    app.add_middleware(BodySizeLimitMiddleware, max_bytes=settings.max_upload_bytes)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    install_error_handlers(app)
    app.include_router(upload.router)

    @app.get("/")
    async def root():
        """Health check endpoint."""
        return {"message": "Profile upload server is running"}

    @app.get("/health")
    async def health_check():
        """Detailed health check endpoint."""
        return {
            "status": "healthy",
            "service": "profile-upload-server",
            "version": "1.0.0"
        }

    app.mount("/uploads", StaticFiles(directory=str(uploads_dir)), name="uploads")

    logger.info("Upload server configured", uploads_dir=str(uploads_dir), base_url=settings.base_url)
    return app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:create_app",
        factory=True,
        host=default_settings.host,
        port=default_settings.port
    )
