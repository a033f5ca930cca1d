import logging
import re
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

from bodyshop.config import settings

logger = logging.getLogger(__name__)


@dataclass
class StoredFile:
    storage_path: str
    public_url: str
    size: int


def sanitize_filename(filename: str) -> str:
    """Keeps letters, digits, dot, underscore and hyphen; lowercases the rest."""
    name = Path(filename or "").name
    name = re.sub(r"[^\w.-]", "-", name)
    name = re.sub(r"-{2,}", "-", name)
    name = name.strip("-").lower()
    return name or "file"


class FileStore:
    """Attachments on local disk, served by the app under ``public_prefix``."""

    def __init__(self, root, public_prefix: str = "/uploads"):
        self.root = Path(root)
        self.public_prefix = public_prefix.rstrip("/")

    def save(self, appointment_id: int, filename: str, source: BinaryIO) -> StoredFile:
        safe_id = re.sub(r"[^\w-]", "", str(appointment_id))
        relative = Path("appointments") / safe_id / f"{int(time.time() * 1000)}_{sanitize_filename(filename)}"
        target = self.root / relative
        target.parent.mkdir(parents=True, exist_ok=True)

        with target.open("wb") as buffer:
            shutil.copyfileobj(source, buffer)

        return StoredFile(
            storage_path=relative.as_posix(),
            public_url=f"{self.public_prefix}/{relative.as_posix()}",
            size=target.stat().st_size,
        )

    def delete(self, storage_path: str) -> None:
        try:
            (self.root / storage_path).unlink()
        except FileNotFoundError:
            logger.debug("File already gone: %s", storage_path)


def get_file_store() -> FileStore:
    return FileStore(settings.UPLOAD_DIR)
