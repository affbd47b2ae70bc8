from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


class UploadError(Exception):
    """Terminal failure of an upload request, rendered as an HTTP error."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class AuthError(UploadError):
    status_code = 403


class ValidationError(UploadError):
    status_code = 400


class StorageError(UploadError):
    status_code = 500


class ProtocolError(UploadError):
    status_code = 405


async def upload_error_handler(request: Request, exc: UploadError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(UploadError, upload_error_handler)
