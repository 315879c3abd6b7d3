"""Local disk storage for incident photos and videos."""

import logging
import os
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from incident_hub.config import settings
from incident_hub.core.exceptions import ValidationException

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".mp4", ".webm"}
ALLOWED_CONTENT_TYPES = {"image/jpeg", "image/png", "video/mp4", "video/webm"}


@dataclass
class MediaFile:
    """An uploaded file held in memory until the whole batch is accepted."""

    filename: str
    content_type: str
    data: bytes

    @property
    def extension(self) -> str:
        return os.path.splitext(self.filename or "")[1].lower()


class MediaStorage:
    """
    Stores incident media under ``root`` and returns stable relative URLs.

    A submission is all-or-nothing: every file is validated before any is
    written, and ``save_all`` removes what it wrote if a later write fails.
    """

    def __init__(
        self,
        root: Optional[str] = None,
        url_prefix: Optional[str] = None,
        max_file_bytes: Optional[int] = None,
        max_files: Optional[int] = None,
    ):
        self.root = Path(root or settings.upload_dir)
        self.url_prefix = (url_prefix or settings.upload_url_prefix).rstrip("/")
        self.max_file_bytes = max_file_bytes or settings.max_upload_size_bytes
        self.max_files = settings.max_files_per_incident if max_files is None else max_files

    def validate(self, files: Sequence[MediaFile]) -> None:
        if len(files) > self.max_files:
            raise ValidationException(
                f"At most {self.max_files} media files are allowed per incident",
                field="media",
            )
        for media in files:
            if media.extension not in ALLOWED_EXTENSIONS or media.content_type not in ALLOWED_CONTENT_TYPES:
                raise ValidationException(
                    "Only JPEG/PNG images and MP4/WebM videos are allowed",
                    field="media",
                )
            if len(media.data) > self.max_file_bytes:
                raise ValidationException(
                    f"Media files must be at most {self.max_file_bytes // (1024 * 1024)}MB",
                    field="media",
                )

    def _path_for(self, url: str) -> Path:
        return self.root / url.rsplit("/", 1)[-1]

    def save_all(self, files: Sequence[MediaFile]) -> List[str]:
        """Validate then write every file. Returns their URLs in input order."""
        self.validate(files)
        if not files:
            return []

        self.root.mkdir(parents=True, exist_ok=True)
        urls: List[str] = []
        try:
            for media in files:
                name = f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:12]}{media.extension}"
                (self.root / name).write_bytes(media.data)
                urls.append(f"{self.url_prefix}/{name}")
        except OSError:
            logger.error(f"Media write failed after {len(urls)} file(s); removing partial upload")
            self.delete(urls)
            raise

        return urls

    def delete(self, urls: Sequence[str]) -> None:
        """Remove stored files; missing files are ignored."""
        for url in urls:
            try:
                self._path_for(url).unlink(missing_ok=True)
            except OSError as e:
                logger.warning(f"Could not remove media file {url}: {e}")


media_storage = MediaStorage()
