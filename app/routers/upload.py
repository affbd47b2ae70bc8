from fastapi import APIRouter, Depends, Request
from app.config import Settings
from app.dependencies import get_resolver, get_settings, get_storage
from app.schemas.upload import UploadResponse
from app.services.destination import DestinationResolver
from app.services.storage import StorageBackend
from app.services.upload_handler import UploadHandler, UploadPolicy

router = APIRouter(prefix="/api", tags=["upload"])

PROFILE_IMAGE_POLICY = UploadPolicy(field_name="profileImage", caller_field="userId")


@router.post("/upload-profile-image", response_model=UploadResponse)
async def upload_profile_image(
    request: Request,
    storage: StorageBackend = Depends(get_storage),
    resolver: DestinationResolver = Depends(get_resolver),
    settings: Settings = Depends(get_settings)
):
    """
    Store an uploaded image (or application document) on local disk.

    Form fields:
        profileImage: The file
        userId: Caller identifier; ids containing the document marker are
            filed as documents
        category: Optional explicit "profile" or "document"

    Returns:
        Public static URL of the stored file
    """
    handler = UploadHandler(storage, resolver, PROFILE_IMAGE_POLICY, tmp_dir=settings.tmp_dir)
    stored = await handler.handle(request.headers.get("content-type"), request.stream())

    return UploadResponse(
        url=stored.url,
        category=stored.category,
        filename=stored.filename
    )
