"""
Blob storage for uploaded images.

LocalBlobStore keeps files under UPLOAD_DIR and serves them from /uploads.
When CLOUDINARY_URL is set the Cloudinary store is used instead; the
cloudinary package is only imported in that case.
"""

import logging
import os
import secrets
from dataclasses import dataclass
from typing import Optional

from config import CLOUDINARY_URL, UPLOAD_DIR
from errors import DependencyError
from schemas import ImageRef

logger = logging.getLogger(__name__)

DEFAULT_FOLDER = "uploads"


@dataclass
class UploadedFile:
    data: bytes
    filename: str


class BlobStore:
    def upload(self, data: bytes, filename: str, folder: str = DEFAULT_FOLDER) -> ImageRef:
        raise NotImplementedError

    def destroy(self, public_id: str) -> None:
        raise NotImplementedError


class LocalBlobStore(BlobStore):
    def __init__(self, root: str = UPLOAD_DIR, url_prefix: str = "/uploads"):
        self.root = root
        self.url_prefix = url_prefix.rstrip("/")

    def _path(self, public_id: str) -> str:
        path = os.path.realpath(os.path.join(self.root, public_id))
        if not path.startswith(os.path.realpath(self.root) + os.sep):
            raise DependencyError("Invalid blob handle")
        return path

    def upload(self, data: bytes, filename: str, folder: str = DEFAULT_FOLDER) -> ImageRef:
        _, ext = os.path.splitext(filename or "")
        public_id = f"{folder}/{secrets.token_hex(12)}{ext.lower()}"
        try:
            path = self._path(public_id)
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, "wb") as fh:
                fh.write(data)
        except OSError as e:
            logger.warning("Local upload failed for %s: %s", filename, e)
            raise DependencyError("Image upload failed") from e
        return ImageRef(url=f"{self.url_prefix}/{public_id}", public_id=public_id)

    def destroy(self, public_id: str) -> None:
        try:
            os.remove(self._path(public_id))
        except FileNotFoundError:
            logger.info("Blob %s already gone", public_id)
        except OSError as e:
            logger.warning("Local destroy failed for %s: %s", public_id, e)
            raise DependencyError("Image removal failed") from e


class CloudinaryBlobStore(BlobStore):
    def __init__(self, base_folder: str = "artistgrade"):
        import cloudinary
        import cloudinary.uploader

        cloudinary.config(secure=True)
        self._uploader = cloudinary.uploader
        self.base_folder = base_folder

    def upload(self, data: bytes, filename: str, folder: str = DEFAULT_FOLDER) -> ImageRef:
        try:
            result = self._uploader.upload(data, folder=f"{self.base_folder}/{folder}")
        except Exception as e:
            logger.warning("Cloudinary upload failed for %s: %s", filename, e)
            raise DependencyError("Image upload failed") from e
        return ImageRef(url=result["secure_url"], public_id=result["public_id"])

    def destroy(self, public_id: str) -> None:
        try:
            self._uploader.destroy(public_id)
        except Exception as e:
            logger.warning("Cloudinary destroy failed for %s: %s", public_id, e)
            raise DependencyError("Image removal failed") from e


_default_store: Optional[BlobStore] = None


def default_blob_store() -> BlobStore:
    global _default_store
    if _default_store is None:
        _default_store = CloudinaryBlobStore() if CLOUDINARY_URL else LocalBlobStore()
    return _default_store
