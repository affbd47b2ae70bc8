from typing import Optional, Protocol

from app.config import Settings
from app.services.destination import ResolvedDestination
from app.services.local_storage import LocalStorage
from app.services.s3_service import S3Service


class StorageBackend(Protocol):
    """Where uploaded files end up; implemented by LocalStorage and S3Service."""

    def ensure_location(self, destination: ResolvedDestination) -> None: ...

    def save(self, source_path: str, destination: ResolvedDestination,
             content_type: str, uploaded_by: str) -> None: ...

    def public_url(self, destination: ResolvedDestination) -> str: ...


def build_storage(settings: Settings, backend: Optional[str] = None) -> StorageBackend:
    backend = (backend or settings.storage_backend).lower()
    if backend == "s3":
        return S3Service.from_settings(settings)
    if backend == "local":
        return LocalStorage(settings.uploads_dir, settings.base_url)
    raise ValueError(f"Unknown storage backend: {backend}")
