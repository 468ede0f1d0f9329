import logging
import os
from abc import ABC, abstractmethod

from workhub.core.errors import StorageError

logger = logging.getLogger(__name__)


class FileStorage(ABC):
    @abstractmethod
    def store(self, content: bytes, target_path: str) -> str:
        """Persist ``content`` and return the final relative path."""

    @abstractmethod
    def delete(self, path: str) -> None:
        ...


class LocalFileStorage(FileStorage):
    """Keeps uploaded files under ``root`` on the local disk."""

    def __init__(self, root: str = "media"):
        self.root = root

    def _absolute(self, path: str) -> str:
        full_path = os.path.abspath(os.path.join(self.root, path))
        if not full_path.startswith(os.path.abspath(self.root) + os.sep):
            raise StorageError(f"Path escapes storage root: {path}")
        return full_path

    def store(self, content, target_path):
        full_path = self._absolute(target_path)
        try:
            os.makedirs(os.path.dirname(full_path), exist_ok=True)
            with open(full_path, "wb") as f:
                f.write(content)
        except OSError as e:
            logger.error(f"File upload failed: {str(e)}")
            raise StorageError("File upload failed")
        return target_path

    def delete(self, path):
        full_path = self._absolute(path)
        try:
            os.remove(full_path)
        except FileNotFoundError:
            logger.warning(f"File {path} already removed")
        except OSError as e:
            logger.error(f"File removal failed: {str(e)}")
            raise StorageError("File removal failed")

    def exists(self, path: str) -> bool:
        return os.path.exists(self._absolute(path))
