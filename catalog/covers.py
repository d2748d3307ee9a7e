"""
Cover image storage.

Uploaded covers are validated (extension, size), written under the upload
directory with a generated name and served statically under ``/uploads``.
Books store only the filename.
"""

import uuid
from pathlib import Path
from typing import Optional, Union

import aiofiles
import structlog

from .exceptions import StorageError, ValidationError

logger = structlog.get_logger(__name__)

ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp"}
PUBLIC_PREFIX = "/uploads"


class CoverImageStorage:
    """Writes, locates and removes cover image files."""

    def __init__(self, upload_dir: Union[str, Path], max_size: int):
        self.upload_dir = Path(upload_dir)
        self.max_size = max_size

    def validate_extension(self, filename: Optional[str]) -> str:
        """Return the lower-cased extension of an allowed image filename."""
        extension = Path(filename or "").suffix.lower()
        if extension not in ALLOWED_EXTENSIONS:
            raise ValidationError(
                f"File type '{extension or 'unknown'}' is not supported. "
                f"Allowed types: {', '.join(sorted(ALLOWED_EXTENSIONS))}",
                field="coverImage",
                context={"extension": extension},
            )
        return extension

    def validate_size(self, size: int) -> None:
        if size == 0:
            raise ValidationError("Cover image is empty", field="coverImage")
        if size > self.max_size:
            max_mb = self.max_size / (1024 * 1024)
            raise ValidationError(
                f"Cover image exceeds the maximum size of {max_mb:.1f}MB",
                field="coverImage",
                context={"size": size, "max_size": self.max_size},
            )

    def path_for(self, filename: str) -> Path:
        """Absolute location of a stored file; directory components in ``filename`` are ignored."""
        return self.upload_dir / Path(filename).name

    @staticmethod
    def url_for(filename: Optional[str]) -> Optional[str]:
        """Public URL of a stored cover, or None."""
        if not filename:
            return None
        return f"{PUBLIC_PREFIX}/{filename}"

    async def save(self, original_filename: Optional[str], content: bytes) -> str:
        """
        Validate and write an uploaded cover.

        Returns:
            The generated filename to store on the book

        Raises:
            ValidationError: unsupported type, empty or too large
            StorageError: the file could not be written
        """
        extension = self.validate_extension(original_filename)
        self.validate_size(len(content))

        filename = f"coverImage-{uuid.uuid4().hex}{extension}"
        path = self.path_for(filename)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(path, "wb") as f:
                await f.write(content)
        except OSError as e:
            logger.error("Failed to store cover image", path=str(path), error=str(e))
            raise StorageError(context={"path": str(path), "os_error": str(e)})

        logger.info("Cover image stored", filename=filename, size=len(content))
        return filename

    async def remove(self, filename: Optional[str]) -> None:
        """Delete a stored cover. Missing files and OS errors are logged, not raised."""
        if not filename:
            return
        path = self.path_for(filename)
        try:
            if path.exists():
                path.unlink()
                logger.info("Cover image removed", filename=filename)
            else:
                logger.debug("Cover image already gone", filename=filename)
        except OSError as e:
            logger.warning("Failed to remove cover image", filename=filename, error=str(e))
