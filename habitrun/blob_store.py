# habitrun/blob_store.py
import logging
import os
import time
import uuid
from typing import Optional

from werkzeug.utils import safe_join, secure_filename

from .errors import NotFoundError, PersistenceFailure

logger = logging.getLogger(__name__)

IMAGE_SUBDIR = "workout_images"


class LocalBlobStore:
    """
    Keeps uploaded screenshots on local disk and hands back a URL for them.

    Layout: <root>/workout_images/<epoch_ms>_<id>_<name>
    URL:    <url_prefix>/workout_images/<epoch_ms>_<id>_<name>
    """

    def __init__(self, root: str, url_prefix: str = "/uploads"):
        self.root = os.path.abspath(root)
        self.url_prefix = url_prefix.rstrip("/")

    def store(self, image_bytes: bytes, filename: Optional[str] = None) -> str:
        if not image_bytes:
            raise PersistenceFailure("Refusing to store an empty image")

        name = secure_filename(filename or "") or "upload.jpg"
        stored_name = f"{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}_{name}"
        rel_path = f"{IMAGE_SUBDIR}/{stored_name}"

        try:
            os.makedirs(os.path.join(self.root, IMAGE_SUBDIR), exist_ok=True)
            with open(os.path.join(self.root, IMAGE_SUBDIR, stored_name), "wb") as fh:
                fh.write(image_bytes)
        except OSError as e:
            logger.exception("Error uploading image to %s", self.root)
            raise PersistenceFailure("Failed to store image") from e

        return f"{self.url_prefix}/{rel_path}"

    def open_path(self, rel_path: str) -> str:
        """Absolute path for a stored name; refuses anything outside the root."""
        path = safe_join(self.root, rel_path)
        if path is None or not os.path.isfile(path):
            raise NotFoundError("image not found")
        return path

    def delete(self, url: str) -> None:
        """Remove a stored image by the URL ``store`` returned. Missing is fine."""
        prefix = self.url_prefix + "/"
        if not url.startswith(prefix):
            raise NotFoundError("image not found")
        path = safe_join(self.root, url[len(prefix):])
        if path is None:
            raise NotFoundError("image not found")
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
