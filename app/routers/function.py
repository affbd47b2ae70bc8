from fastapi import APIRouter, Depends, Request
from app.config import Settings
from app.dependencies import get_resolver, get_settings, get_storage, get_token_verifier
from app.errors import ProtocolError
from app.middleware.auth import TokenVerifier, authenticate
from app.schemas.upload import UploadResponse
from app.services.destination import DestinationResolver
from app.services.storage import StorageBackend
from app.services.upload_handler import UploadHandler, UploadPolicy
import structlog

logger = structlog.get_logger()
router = APIRouter(tags=["function"])

PROFILE_PICTURE_POLICY = UploadPolicy(
    field_name="image",
    require_image=True,
    missing_file_message="No image file provided."
)


@router.api_route(
    "/uploadProfilePicture",
    methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    response_model=UploadResponse
)
async def upload_profile_picture(
    request: Request,
    storage: StorageBackend = Depends(get_storage),
    resolver: DestinationResolver = Depends(get_resolver),
    verifier: TokenVerifier = Depends(get_token_verifier),
    settings: Settings = Depends(get_settings)
):
    """
    Verify the caller's ID token, store the uploaded image in the object
    store and return a long-lived signed URL.

    The method check and the token check both happen before the request
    body is read; the body is then parsed as it streams in.
    """
    if request.method != "POST":
        raise ProtocolError("Method Not Allowed")

    user = await authenticate(request.headers.get("Authorization"), verifier)
    uid = user["user_id"]

    handler = UploadHandler(storage, resolver, PROFILE_PICTURE_POLICY, tmp_dir=settings.tmp_dir)
    stored = await handler.handle(request.headers.get("content-type"), request.stream(), caller_id=uid)

    logger.info("Profile picture stored", user_id=uid, storage_path=stored.storage_path)

    return UploadResponse(
        url=stored.url,
        category=stored.category,
        filename=stored.filename
    )
