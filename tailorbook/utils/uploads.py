# tailorbook/utils/uploads.py
from __future__ import annotations

import os
import uuid

from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from tailorbook.config.shop import IMAGE_EXTENSIONS, LOGO_MAX_BYTES
from tailorbook.services.storage import DESIGNS_BUCKET, LOGOS_BUCKET, get_file_store


class UploadRejected(ValueError):
    """The uploaded file is not acceptable (type / size). Nothing was stored."""


def _extension(filename: str) -> str:
    return os.path.splitext(secure_filename(filename or ""))[1].lstrip(".").lower()


def read_image(upload: FileStorage, max_bytes: int | None = None) -> tuple[bytes, str]:
    """Validate an image upload and return (data, extension)."""
    if not upload or not upload.filename:
        raise UploadRejected("Please choose an image.")

    ext = _extension(upload.filename)
    mimetype = (upload.mimetype or "").lower()
    if ext not in IMAGE_EXTENSIONS or (mimetype and not mimetype.startswith("image/")):
        raise UploadRejected("Only image files are allowed.")

    data = upload.read()
    if not data:
        raise UploadRejected("The selected file is empty.")
    if max_bytes is not None and len(data) > max_bytes:
        raise UploadRejected(f"Image must be smaller than {max_bytes // 1024} KB.")

    return data, ext


def store_logo(profile_id: int, upload: FileStorage) -> str:
    """Upload a shop logo, returns its public URL."""
    data, ext = read_image(upload, LOGO_MAX_BYTES)
    store = get_file_store(LOGOS_BUCKET)
    stored = store.upload(f"{profile_id}/logo-{uuid.uuid4().hex[:8]}.{ext}", data,
                          content_type=upload.mimetype or f"image/{ext}")
    return store.public_url(stored.path)


def store_design(profile_id: int, upload: FileStorage) -> tuple[str, str]:
    """Upload a catalog image, returns (storage_path, public_url)."""
    data, ext = read_image(upload)
    store = get_file_store(DESIGNS_BUCKET)
    stored = store.upload(f"{profile_id}/{uuid.uuid4().hex}.{ext}", data,
                          content_type=upload.mimetype or f"image/{ext}")
    return stored.path, store.public_url(stored.path)
