"""
Product image uploads: validate the declared type and size, then store the
file under a random name in the upload folder.
"""

import logging
import os
import uuid

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
}
IMAGE_EXTENSIONS = set(ALLOWED_IMAGE_TYPES.values()) | {"jpeg"}
MAX_IMAGE_SIZE = 5 * 1024 * 1024  # 5 MiB


class UploadRejected(ValueError):
    """The file is missing, of the wrong type, or too large."""


def _extension(file):
    # stored names always end in an image extension, whatever the client called the file
    name = file.filename or ""
    if "." in name:
        ext = name.rsplit(".", 1)[1].lower()
        if ext in IMAGE_EXTENSIONS:
            return ext
    return ALLOWED_IMAGE_TYPES[file.mimetype]


def save_image(file, upload_dir):
    """
    Store an uploaded image and return its new filename.

    ``file`` is a werkzeug ``FileStorage``. Raises ``UploadRejected`` for bad
    input; filesystem errors propagate as ``OSError``.
    """
    if file is None or not file.filename:
        raise UploadRejected("No file received.")

    if file.mimetype not in ALLOWED_IMAGE_TYPES:
        raise UploadRejected(
            "Invalid file type. Only JPEG, PNG, WebP, and GIF images are allowed."
        )

    data = file.read(MAX_IMAGE_SIZE + 1)
    if len(data) > MAX_IMAGE_SIZE:
        raise UploadRejected("File too large. Maximum size is 5MB.")

    filename = f"{uuid.uuid4()}.{_extension(file)}"

    os.makedirs(upload_dir, exist_ok=True)
    with open(os.path.join(upload_dir, filename), "wb") as fh:
        fh.write(data)

    logger.info("Stored upload %s (%d bytes, %s)", filename, len(data), file.mimetype)
    return filename
