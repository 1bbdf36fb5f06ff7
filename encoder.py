"""
Corn Doctor - Image Encoder

Turns an uploaded leaf photo into the base64 + media type pair that the
Gemini inline image part expects.
"""

import io
import base64
import binascii
import mimetypes
from dataclasses import dataclass
from pathlib import Path

from PIL import Image, UnidentifiedImageError

FALLBACK_MIME_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class EncodedImage:
    """Base64 image content (no data-URI prefix) and its media type."""

    data: str
    mime_type: str

    def decode(self) -> bytes:
        return base64.b64decode(self.data, validate=True)

    @property
    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"

    @classmethod
    def from_data_url(cls, url: str) -> "EncodedImage":
        """Split a `data:<mime>;base64,<payload>` string on its first comma."""
        header, sep, payload = url.partition(",")
        if not sep or not header.startswith("data:") or not header.endswith(";base64"):
            raise ValueError("Not a base64 data URL")
        mime_type = header[len("data:"):-len(";base64")] or FALLBACK_MIME_TYPE
        try:
            base64.b64decode(payload, validate=True)
        except binascii.Error as e:
            raise ValueError(f"Invalid base64 payload: {e}") from e
        return cls(data=payload, mime_type=mime_type)


def sniff_mime_type(image_bytes):
    """Ask Pillow what the bytes are. Returns None when it can't tell."""
    try:
        with Image.open(io.BytesIO(image_bytes)) as image:
            fmt = image.format
    except (UnidentifiedImageError, OSError):
        return None
    return Image.MIME.get(fmt) if fmt else None


def _read_source(source):
    if isinstance(source, (bytes, bytearray, memoryview)):
        return bytes(source), None, None

    if isinstance(source, (str, Path)):
        path = Path(source)
        return path.read_bytes(), None, path.name

    # Werkzeug's FileStorage exposes .mimetype, plain files only .name
    declared = getattr(source, "mimetype", None) or getattr(source, "content_type", None)
    filename = getattr(source, "filename", None) or getattr(source, "name", None)
    content = source.read()
    if not isinstance(content, (bytes, bytearray)):
        raise TypeError(
            f"Image source must yield bytes, got {type(content).__name__}"
        )
    return bytes(content), declared, filename


def resolve_mime_type(image_bytes, declared=None, filename=None):
    if declared:
        return declared
    if filename and isinstance(filename, str):
        guessed, _ = mimetypes.guess_type(filename)
        if guessed:
            return guessed
    return sniff_mime_type(image_bytes) or FALLBACK_MIME_TYPE


def encode_image(source, mime_type=None) -> EncodedImage:
    """Encode raw bytes, a binary file object or a path into an EncodedImage.

    Reading must produce bytes; anything else means the caller passed the wrong
    kind of object and a TypeError is raised.
    """
    image_bytes, declared, filename = _read_source(source)
    resolved = resolve_mime_type(image_bytes, mime_type or declared, filename)
    return EncodedImage(
        data=base64.b64encode(image_bytes).decode("ascii"),
        mime_type=resolved,
    )
