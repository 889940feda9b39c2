import os
import logging
import uuid
from pathlib import Path
from typing import Optional, Protocol

from ..errors import StorageError
from ..settings import settings
from ..storage.image_processing import OUTPUT_EXTENSION, prepare_image

logger = logging.getLogger("reciguard.storage")

MEDIA_URL_PREFIX = "/media/"


class ImageStore(Protocol):
    def upload(self, data: bytes) -> str: ...

    def delete(self, reference: str) -> None: ...


class LocalStorage:
    def __init__(self, media_root: Optional[Path] = None):
        self.media_root = media_root or (
            Path(settings.media_root) if settings.media_root else Path(os.getcwd()) / "media"
        )
        self.media_root.mkdir(parents=True, exist_ok=True)

    def _path_for(self, key: str) -> Path:
        # Keys are generated by upload(); anything climbing out of media_root is rejected
        if ".." in key or key.startswith("/"):
            raise StorageError(f"Invalid storage key: {key}")
        return self.media_root / key

    def put_bytes(self, key: str, data: bytes) -> str:
        """
        Save bytes to local disk.
        key: images/{uuid}.webp
        Returns: Public relative URL
        """
        file_path = self._path_for(key)
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(file_path, "wb") as f:
                f.write(data)
        except OSError as e:
            raise StorageError(f"Failed to write {file_path}: {e}") from e

        logger.info(f"Saved {len(data)} bytes to {file_path}")
        return f"{MEDIA_URL_PREFIX}{key}"

    def upload(self, data: bytes) -> str:
        key = f"images/{uuid.uuid4()}.{OUTPUT_EXTENSION}"
        return self.put_bytes(key, prepare_image(data))

    def exists(self, reference: str) -> bool:
        return self._path_for(self.key_for(reference)).exists()

    @staticmethod
    def key_for(reference: str) -> str:
        if reference.startswith(MEDIA_URL_PREFIX):
            return reference[len(MEDIA_URL_PREFIX):]
        return reference

    def delete(self, reference: str) -> None:
        """Delete a stored image. A missing file is logged and ignored."""
        file_path = self._path_for(self.key_for(reference))
        if not file_path.exists():
            logger.info(f"Delete skipped, {file_path} does not exist")
            return
        try:
            file_path.unlink()
        except OSError as e:
            raise StorageError(f"Failed to delete {file_path}: {e}") from e
        logger.info(f"Deleted file {file_path}")


_store: Optional[ImageStore] = None


def get_image_store() -> ImageStore:
    """FastAPI dependency returning the configured image store (created once)."""
    global _store
    if _store is None:
        if settings.storage_backend == "s3":
            from ..storage.s3_compat import get_store
            _store = get_store()
        else:
            _store = LocalStorage()
    return _store
