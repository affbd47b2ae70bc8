from enum import Enum
from pydantic import BaseModel


class UploadCategory(str, Enum):
    profile = "profile"
    document = "document"


class UploadResponse(BaseModel):
    message: str = "File uploaded successfully."
    url: str
    category: UploadCategory
    filename: str
