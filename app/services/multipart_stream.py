"""
Incremental multipart/form-data reader.

The request body is fed to python-multipart chunk by chunk as it arrives.
The expected file part is written straight into a temporary file, or dropped
on the floor when its declared Content-Type is not accepted; nothing else is
spooled.
"""
import os
import tempfile
from dataclasses import dataclass, field
from typing import AsyncIterator, Callable, Dict, List, Optional, Tuple

import structlog
from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header

from app.errors import ValidationError

logger = structlog.get_logger()

MAX_FIELD_BYTES = 64 * 1024


@dataclass
class ReceivedFile:
    field_name: str
    filename: str
    content_type: str
    path: str
    size: int = 0


@dataclass
class ReceivedForm:
    fields: Dict[str, str] = field(default_factory=dict)
    file: Optional[ReceivedFile] = None
    rejected_content_type: Optional[str] = None
    discarded_bytes: int = 0

    def cleanup(self) -> None:
        if self.file is not None and os.path.exists(self.file.path):
            os.remove(self.file.path)


def accept_any(content_type: str) -> bool:
    return True


def accept_images(content_type: str) -> bool:
    return content_type.startswith("image/")


class StreamingFormReader:
    """Reads one request body; an instance is not reusable."""

    def __init__(self, field_name: str, accept: Callable[[str], bool] = accept_any,
                 tmp_dir: Optional[str] = None, max_field_bytes: int = MAX_FIELD_BYTES):
        self.field_name = field_name
        self.accept = accept
        self.tmp_dir = tmp_dir
        self.max_field_bytes = max_field_bytes

        self.form = ReceivedForm()
        self._headers: List[Tuple[bytes, bytes]] = []
        self._header_field = b""
        self._header_value = b""
        self._part_name: Optional[str] = None
        self._file_sink = None
        self._text_sink: Optional[bytearray] = None

    async def read(self, content_type: Optional[str], stream: AsyncIterator[bytes]) -> ReceivedForm:
        """
        Consume the body stream and return what was received.

        Bodies that are not multipart carry no file part; they are not read.

        Raises:
            ValidationError: If the multipart body is malformed or a text
                field is too large
        """
        mimetype, options = parse_options_header(content_type or "")
        boundary = options.get(b"boundary")
        if mimetype != b"multipart/form-data" or not boundary:
            return self.form

        parser = MultipartParser(boundary, callbacks={
            "on_part_begin": self._on_part_begin,
            "on_part_data": self._on_part_data,
            "on_part_end": self._on_part_end,
            "on_header_field": self._on_header_field,
            "on_header_value": self._on_header_value,
            "on_header_end": self._on_header_end,
            "on_headers_finished": self._on_headers_finished,
        })
        try:
            async for chunk in stream:
                if chunk:
                    parser.write(chunk)
            parser.finalize()
        except MultipartParseError as e:
            self._abort()
            logger.warning("Malformed multipart body", error=str(e))
            raise ValidationError("Malformed multipart body.")
        except Exception:
            self._abort()
            raise

        if self.form.discarded_bytes:
            logger.info(
                "Discarded multipart data",
                discarded_bytes=self.form.discarded_bytes,
                rejected_content_type=self.form.rejected_content_type
            )
        return self.form

    def _abort(self) -> None:
        if self._file_sink is not None:
            self._file_sink.close()
            self._file_sink = None
        self.form.cleanup()

    def _on_part_begin(self) -> None:
        self._headers = []
        self._part_name = None
        self._file_sink = None
        self._text_sink = None

    def _on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_field += data[start:end]

    def _on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value += data[start:end]

    def _on_header_end(self) -> None:
        self._headers.append((self._header_field.lower(), self._header_value))
        self._header_field = b""
        self._header_value = b""

    def _on_headers_finished(self) -> None:
        headers = dict(self._headers)
        _, disposition = parse_options_header(headers.get(b"content-disposition", b""))
        self._part_name = disposition.get(b"name", b"").decode("utf-8", "replace")
        content_type = headers.get(b"content-type", b"").decode("latin-1").strip()

        if b"filename" not in disposition:
            self._text_sink = bytearray()
            return

        # Only the first file part under the expected name is considered
        if (self._part_name != self.field_name or self.form.file is not None
                or self.form.rejected_content_type is not None):
            return

        if not self.accept(content_type):
            self.form.rejected_content_type = content_type
            return

        fd, path = tempfile.mkstemp(prefix="upload_", dir=self.tmp_dir)
        self._file_sink = os.fdopen(fd, "wb")
        self.form.file = ReceivedFile(
            field_name=self._part_name,
            filename=disposition[b"filename"].decode("utf-8", "replace"),
            content_type=content_type,
            path=path,
        )

    def _on_part_data(self, data: bytes, start: int, end: int) -> None:
        if self._file_sink is not None:
            self._file_sink.write(data[start:end])
            self.form.file.size += end - start
        elif self._text_sink is not None:
            self._text_sink += data[start:end]
            if len(self._text_sink) > self.max_field_bytes:
                raise ValidationError(f"Form field '{self._part_name}' is too large.")
        else:
            self.form.discarded_bytes += end - start

    def _on_part_end(self) -> None:
        if self._file_sink is not None:
            self._file_sink.close()
            self._file_sink = None
        elif self._text_sink is not None:
            self.form.fields[self._part_name] = self._text_sink.decode("utf-8", "replace")
            self._text_sink = None
