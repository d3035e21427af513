import logging
import mimetypes
from pathlib import Path

from app.core.errors import IOFailure, NotFound, PayloadTooLarge, ValidationError
from app.models.records import UploadPayload

logger = logging.getLogger(__name__)


def attachment_name_from_upload(filename: str | None) -> str:
    """Bare file name of an upload: last path segment, either separator."""
    name = (filename or "").replace("\\", "/").split("/")[-1].strip()
    if not name or name in (".", "..") or "\x00" in name:
        raise ValidationError("Invalid attachment file name")
    return name


def guess_media_type(name: str) -> str:
    media_type, _ = mimetypes.guess_type(name)
    return media_type or "application/octet-stream"


class AttachmentStore:
    """Flat file area keyed by attachment name.

    Every name shares one directory, so two uploads with the same original
    name overwrite each other.
    """

    def __init__(self, root: str | Path, max_bytes: int | None = None) -> None:
        self._root = Path(root).expanduser().resolve()
        self._max_bytes = max_bytes

    @property
    def root(self) -> Path:
        return self._root

    def _path_for(self, name: str) -> Path | None:
        path = (self._root / name).resolve()
        if path.parent != self._root:
            return None
        return path

    def check_size(self, upload: UploadPayload) -> None:
        if self._max_bytes is not None and len(upload.content) > self._max_bytes:
            limit_mb = self._max_bytes // (1024 * 1024)
            raise PayloadTooLarge(f"Attachment too large (max {limit_mb}MB)")

    def write(self, name: str, content: bytes) -> None:
        path = self._path_for(name)
        if path is None:
            raise IOFailure(f"attachment path escapes storage root: {name!r}")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)
        except OSError as exc:
            logger.error("Failed to write attachment %s: %s", name, exc)
            raise IOFailure(str(exc)) from exc

    def read(self, name: str) -> bytes:
        path = self._path_for(name)
        if path is None or not path.is_file():
            raise NotFound("Attachment not found")
        try:
            return path.read_bytes()
        except FileNotFoundError:
            raise NotFound("Attachment not found")
        except OSError as exc:
            raise IOFailure(str(exc)) from exc

    def delete(self, name: str) -> None:
        path = self._path_for(name)
        if path is None:
            return
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise IOFailure(str(exc)) from exc

    def exists(self, name: str) -> bool:
        path = self._path_for(name)
        return path is not None and path.is_file()
