from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Optional

import structlog
from starlette.concurrency import run_in_threadpool

from app.errors import UploadError, ValidationError
from app.schemas.upload import UploadCategory
from app.services.destination import DestinationResolver
from app.services.multipart_stream import (
    ReceivedForm,
    StreamingFormReader,
    accept_any,
    accept_images,
)
from app.services.storage import StorageBackend

logger = structlog.get_logger()


class UploadState(str, Enum):
    receiving = "receiving"
    validating = "validating"
    persisting = "persisting"
    responding = "responding"
    done = "done"
    error = "error"


@dataclass(frozen=True)
class UploadPolicy:
    field_name: str
    require_image: bool = False
    caller_field: Optional[str] = None  # form field carrying the caller id
    missing_file_message: str = "No file was uploaded."
    invalid_type_message: str = "Invalid file type. Only images are allowed."


@dataclass(frozen=True)
class StoredObjectReference:
    url: str
    category: UploadCategory
    storage_path: str
    filename: str


def parse_category(value: Optional[str]) -> Optional[UploadCategory]:
    """Validate the optional ``category`` form field."""
    if value is None or not value.strip():
        return None
    try:
        return UploadCategory(value.strip().lower())
    except ValueError:
        allowed = ", ".join(c.value for c in UploadCategory)
        raise ValidationError(f"Invalid category '{value}'. Expected one of: {allowed}.")


class UploadHandler:
    """
    Drives one upload through receiving -> validating -> persisting ->
    responding -> done. Any failure moves the handler to the error state and
    re-raises; the temporary file is removed on every path.

    The body is parsed while it streams in. A file part whose declared type
    the policy refuses is dropped as it arrives, so it never touches disk.

    A handler instance serves a single request. The storage backend and the
    resolver are shared, process-wide handles.
    """

    def __init__(self, storage: StorageBackend, resolver: DestinationResolver,
                 policy: UploadPolicy, tmp_dir: Optional[str] = None):
        self.storage = storage
        self.resolver = resolver
        self.policy = policy
        self.tmp_dir = tmp_dir
        self.state = UploadState.receiving

    def _advance(self, state: UploadState, **context) -> None:
        logger.debug("Upload state change", previous=self.state.value, state=state.value, **context)
        self.state = state

    async def handle(self, content_type: Optional[str], stream: AsyncIterator[bytes],
                     caller_id: Optional[str] = None) -> StoredObjectReference:
        """
        Receive, store and publish one upload.

        Args:
            content_type: Request Content-Type header, carrying the boundary
            stream: Request body chunks
            caller_id: Caller identifier; when None it is taken from the
                policy's caller field

        Returns:
            Reference to the stored object and its public URL
        """
        form = None
        try:
            reader = StreamingFormReader(
                self.policy.field_name,
                accept=accept_images if self.policy.require_image else accept_any,
                tmp_dir=self.tmp_dir
            )
            form = await reader.read(content_type, stream)

            self._advance(UploadState.validating, field=self.policy.field_name)
            self._validate(form)
            category = parse_category(form.fields.get("category"))
            if caller_id is None and self.policy.caller_field:
                caller_id = form.fields.get(self.policy.caller_field)

            self._advance(UploadState.persisting)
            caller_id = self.resolver.caller_or_default(caller_id)
            destination = self.resolver.resolve(caller_id, category, form.file.filename)
            await run_in_threadpool(self.storage.ensure_location, destination)
            await run_in_threadpool(
                self.storage.save,
                form.file.path,
                destination,
                form.file.content_type or "application/octet-stream",
                caller_id,
            )

            self._advance(UploadState.responding, storage_path=destination.storage_path)
            url = await run_in_threadpool(self.storage.public_url, destination)

            self._advance(UploadState.done)
            logger.info(
                "File uploaded successfully",
                caller_id=caller_id,
                category=destination.category.value,
                size=form.file.size,
                url=url
            )
            return StoredObjectReference(
                url=url,
                category=destination.category,
                storage_path=destination.storage_path,
                filename=destination.generated_filename,
            )
        except UploadError as e:
            logger.warning(
                "Upload rejected",
                state=self.state.value,
                status_code=e.status_code,
                error=e.message
            )
            self.state = UploadState.error
            raise
        except OSError as e:
            logger.error("Upload failed", state=self.state.value, error=str(e))
            self.state = UploadState.error
            raise UploadError("File upload failed on the server.")
        finally:
            if form is not None:
                form.cleanup()

    def _validate(self, form: ReceivedForm) -> None:
        if form.rejected_content_type is not None:
            raise ValidationError(self.policy.invalid_type_message)
        if form.file is None:
            raise ValidationError(self.policy.missing_file_message)
