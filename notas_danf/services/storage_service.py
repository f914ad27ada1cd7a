import logging
import os
import time
from notas_danf.config import UPLOAD_DIR

logger = logging.getLogger(__name__)

_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
}

URL_PREFIX = "/uploads"


class PhotoStorage:
    """Receipt photos stored under UPLOAD_DIR/<user_id>/<timestamp>.<ext>."""

    def __init__(self, root: str = UPLOAD_DIR):
        self.root = root

    def save(self, user_id: int, content: bytes, content_type: str) -> str:
        ext = _EXTENSIONS.get(content_type, ".jpg")
        rel_path = f"{user_id}/{int(time.time() * 1000)}{ext}"
        full_path = os.path.join(self.root, rel_path)
        os.makedirs(os.path.dirname(full_path), exist_ok=True)
        with open(full_path, "wb") as f:
            f.write(content)
        logger.info(f"Photo stored: {full_path} ({len(content)} bytes)")
        return f"{URL_PREFIX}/{rel_path}"
