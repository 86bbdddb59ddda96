"""Avatar image storage on the local filesystem.

Files are written under `settings.UPLOAD_DIR` and served by the app under
`/uploads`. Only real images are accepted: the payload is sniffed with
Pillow rather than trusting the filename or content type.
"""

from __future__ import annotations

import io
import secrets
import time
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from ..config import settings
from ..errors import InvalidInputError

_FORMAT_EXTENSIONS = {"JPEG": ".jpg", "PNG": ".png", "GIF": ".gif", "WEBP": ".webp", "BMP": ".bmp"}


def upload_root() -> Path:
    root = settings.UPLOAD_DIR
    root.mkdir(parents=True, exist_ok=True)
    return root


def sniff_image_extension(payload: bytes) -> str:
    """Return the file extension for an image payload or raise `InvalidInputError`."""
    try:
        with Image.open(io.BytesIO(payload)) as img:
            fmt = img.format
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError):
        raise InvalidInputError("unsupported file content; expected an image")
    ext = _FORMAT_EXTENSIONS.get(fmt or "")
    if not ext:
        raise InvalidInputError(f"unsupported image format: {fmt}")
    return ext


def save_avatar(payload: bytes) -> str:
    """Store an avatar and return its public path (`/uploads/<file>`)."""
    if not payload:
        raise InvalidInputError("empty file")
    if len(payload) > settings.MAX_UPLOAD_BYTES:
        raise InvalidInputError("file too large")
    ext = sniff_image_extension(payload)
    filename = f"user-{int(time.time() * 1000)}-{secrets.randbelow(10**9)}{ext}"
    (upload_root() / filename).write_bytes(payload)
    return f"{settings.UPLOAD_URL_PREFIX}/{filename}"


def delete_avatar(public_path: str | None) -> None:
    """Remove a previously stored avatar; unknown paths are ignored."""
    if not public_path or not public_path.startswith(settings.UPLOAD_URL_PREFIX + "/"):
        return
    name = Path(public_path).name
    target = upload_root() / name
    if target.is_file():
        target.unlink()
