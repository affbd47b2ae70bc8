import os
import re
import time
import uuid
from dataclasses import dataclass
from typing import Optional

from app.config import Settings
from app.schemas.upload import UploadCategory

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


@dataclass(frozen=True)
class ResolvedDestination:
    category: UploadCategory
    folder: str
    storage_path: str  # object key, or path relative to the uploads root
    generated_filename: str


def sanitize_component(value: str) -> str:
    """Make a caller supplied string safe to use as a single path component."""
    cleaned = _UNSAFE_CHARS.sub("_", value).lstrip(".")
    return cleaned or "_"


def generate_filename(caller_id: str, extension: str = "") -> str:
    """
    Build a stored filename from the caller id, the current time in
    milliseconds and a random token.

    Args:
        caller_id: Caller identifier, sanitized before use
        extension: File extension with or without the leading dot

    Returns:
        e.g. ``user42-1718000000000-9f1c2ab4e07d.png``
    """
    extension = extension.lower()
    if extension and not extension.startswith("."):
        extension = f".{extension}"
    if extension:
        extension = "." + sanitize_component(extension[1:])
    millis = int(time.time() * 1000)
    token = uuid.uuid4().hex[:12]
    return f"{sanitize_component(caller_id)}-{millis}-{token}{extension}"


class DestinationResolver:
    """
    Decides where an upload lands (profile image vs. document) and what it
    is called.
    """

    def __init__(
        self,
        profile_folder: str,
        document_folder: str,
        document_marker: str = "-doc-",
        default_caller_id: str = "unknown",
        per_caller_folder: bool = False,
        fixed_extension: Optional[str] = None,
    ):
        self.profile_folder = profile_folder
        self.document_folder = document_folder
        self.document_marker = document_marker
        self.default_caller_id = default_caller_id
        self.per_caller_folder = per_caller_folder
        self.fixed_extension = fixed_extension

    @classmethod
    def from_settings(cls, settings: Settings, **overrides) -> "DestinationResolver":
        options = dict(
            profile_folder=settings.profile_folder,
            document_folder=settings.document_folder,
            document_marker=settings.document_marker,
            default_caller_id=settings.default_caller_id,
        )
        options.update(overrides)
        return cls(**options)

    def caller_or_default(self, caller_id: Optional[str]) -> str:
        if caller_id is None or not caller_id.strip():
            return self.default_caller_id
        return caller_id

    def categorize(self, caller_id: str, category: Optional[UploadCategory] = None) -> UploadCategory:
        # An explicit category always wins over the identifier marker
        if category is not None:
            return category
        if self.document_marker and self.document_marker in caller_id:
            return UploadCategory.document
        return UploadCategory.profile

    def folder_for(self, category: UploadCategory) -> str:
        if category == UploadCategory.document:
            return self.document_folder
        return self.profile_folder

    def resolve(
        self,
        caller_id: Optional[str],
        category: Optional[UploadCategory] = None,
        original_filename: Optional[str] = None,
    ) -> ResolvedDestination:
        caller_id = self.caller_or_default(caller_id)
        resolved_category = self.categorize(caller_id, category)
        folder = self.folder_for(resolved_category)

        if self.fixed_extension is not None:
            extension = self.fixed_extension
        else:
            _, extension = os.path.splitext(original_filename or "")
        filename = generate_filename(caller_id, extension)

        parts = [folder]
        if self.per_caller_folder:
            parts.append(sanitize_component(caller_id))
        parts.append(filename)

        return ResolvedDestination(
            category=resolved_category,
            folder=folder,
            storage_path="/".join(parts),
            generated_filename=filename,
        )
