import os
import shutil
from pathlib import Path
from app.errors import StorageError
from app.services.destination import ResolvedDestination
import structlog

logger = structlog.get_logger()


class LocalStorage:
    """Stores uploads under a directory that is served at ``/uploads``."""

    def __init__(self, root: str, public_base_url: str):
        self.root = Path(root)
        self.public_base_url = public_base_url.rstrip("/")

    def path_for(self, destination: ResolvedDestination) -> Path:
        return self.root.joinpath(*destination.storage_path.split("/"))

    def ensure_location(self, destination: ResolvedDestination) -> None:
        try:
            self.path_for(destination).parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error("Failed to create upload folder", error=str(e), folder=destination.folder)
            raise StorageError("File upload failed on the server.")

    def save(self, source_path: str, destination: ResolvedDestination,
             content_type: str, uploaded_by: str) -> None:
        target = self.path_for(destination)
        partial = target.with_name(target.name + ".part")
        try:
            shutil.copyfile(source_path, partial)
            # The final name only appears once the copy is complete
            os.replace(partial, target)
        except OSError as e:
            logger.error(
                "Failed to write upload to disk",
                error=str(e),
                storage_path=destination.storage_path,
                uploaded_by=uploaded_by
            )
            if partial.exists():
                partial.unlink()
            raise StorageError("File upload failed on the server.")

        logger.info(
            "Stored file on local disk",
            path=str(target),
            content_type=content_type,
            uploaded_by=uploaded_by
        )

    def public_url(self, destination: ResolvedDestination) -> str:
        return f"{self.public_base_url}/uploads/{destination.storage_path}"
