"""
Local media store for report attachments.

Uploads are written under ``MEDIA_ROOT`` with a random key and served back from
``MEDIA_URL_PREFIX``. The lifecycle engine only ever sees ``StoredMedia``
records; it never touches files itself.
"""
import os
import secrets
import shutil
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from fastapi import UploadFile
from starlette.concurrency import run_in_threadpool

from civic_reporter.core.config import settings
from civic_reporter.core.errors import ValidationError
from civic_reporter.core.logging import get_logger
from civic_reporter.models.media import MediaType

logger = get_logger("civic_reporter.media")

_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "video/mp4": ".mp4",
    "video/quicktime": ".mov",
    "video/webm": ".webm",
    "audio/mpeg": ".mp3",
    "audio/wav": ".wav",
    "audio/ogg": ".ogg",
    "audio/webm": ".weba",
}


@dataclass
class StoredMedia:
    type: MediaType
    url: str
    storage_key: str
    mime_type: str
    file_size: int

    def as_dict(self) -> dict:
        return asdict(self)


def media_type_for(mime_type: Optional[str]) -> MediaType:
    major = (mime_type or "").split("/", 1)[0].lower()
    try:
        return MediaType(major)
    except ValueError:
        raise ValidationError(f"Unsupported file type: {mime_type or 'unknown'}")


class MediaStore:
    def __init__(
        self,
        root: str = settings.MEDIA_ROOT,
        url_prefix: str = settings.MEDIA_URL_PREFIX,
        max_size: int = settings.MAX_UPLOAD_SIZE,
        max_files: int = settings.MAX_MEDIA_FILES,
    ):
        self.root = Path(root)
        self.url_prefix = url_prefix.rstrip("/")
        self.max_size = max_size
        self.max_files = max_files

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents:
            raise ValidationError("Invalid media key")
        return path

    def _write(self, upload: UploadFile, path: Path) -> int:
        path.parent.mkdir(parents=True, exist_ok=True)
        upload.file.seek(0)
        with open(path, "wb") as out:
            shutil.copyfileobj(upload.file, out)
        return path.stat().st_size

    async def save(self, upload: UploadFile, owner_id: int) -> StoredMedia:
        mime_type = (upload.content_type or "").lower()
        media_type = media_type_for(mime_type)
        extension = _EXTENSIONS.get(mime_type) or os.path.splitext(upload.filename or "")[1].lower()
        key = f"reports/{owner_id}/{secrets.token_urlsafe(16)}{extension}"
        path = self._path(key)

        size = await run_in_threadpool(self._write, upload, path)
        if size == 0 or size > self.max_size:
            await self.delete(key)
            raise ValidationError(f"Each file must be between 1 byte and {self.max_size} bytes")

        logger.info(f"Media stored: key={key}, type={media_type.value}, size={size}")
        return StoredMedia(
            type=media_type,
            url=f"{self.url_prefix}/{key}",
            storage_key=key,
            mime_type=mime_type,
            file_size=size,
        )

    async def save_all(self, uploads: Sequence[UploadFile], owner_id: int) -> List[StoredMedia]:
        """
        Store every upload or none of them.
        """
        uploads = [upload for upload in uploads if upload is not None and upload.filename]
        if len(uploads) > self.max_files:
            raise ValidationError(f"At most {self.max_files} media files are allowed")
        for upload in uploads:
            media_type_for(upload.content_type)

        stored: List[StoredMedia] = []
        try:
            for upload in uploads:
                stored.append(await self.save(upload, owner_id))
        except Exception:
            await self.delete_many([item.storage_key for item in stored])
            raise
        return stored

    async def delete(self, key: str) -> bool:
        path = self._path(key)

        def _unlink() -> bool:
            try:
                path.unlink()
            except FileNotFoundError:
                return False
            return True

        return await run_in_threadpool(_unlink)

    async def delete_many(self, keys: Sequence[str]) -> int:
        """
        Best-effort removal: failures are logged and skipped.
        """
        deleted = 0
        for key in keys:
            try:
                if await self.delete(key):
                    deleted += 1
            except (OSError, ValidationError) as e:
                logger.warning(f"Media delete failed: key={key}, error={str(e)}")
        return deleted


media_store = MediaStore()


def get_media_store() -> MediaStore:
    return media_store
