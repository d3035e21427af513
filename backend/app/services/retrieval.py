from dataclasses import dataclass
from urllib.parse import quote

from app.core.errors import NotFound
from app.services.attachments import AttachmentStore, guess_media_type
from app.services.records import RecordRepository, attachment_url_for


@dataclass(frozen=True)
class AttachmentFile:
    name: str
    content: bytes
    media_type: str

    @property
    def headers(self) -> dict[str, str]:
        ascii_name = self.name.encode("ascii", "ignore").decode("ascii").replace('"', "") or "attachment"
        return {
            "Content-Disposition": f"inline; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(self.name)}",
            "Cache-Control": "private, max-age=60",
        }


@dataclass(frozen=True)
class AttachmentRedirect:
    location: str


class AttachmentGate:
    def __init__(self, repository: RecordRepository, store: AttachmentStore, listing_path: str = "/records") -> None:
        self.repository = repository
        self.store = store
        self.listing_path = listing_path

    def resolve(self, record_id: str, owner_id: str, slug: str) -> AttachmentFile | AttachmentRedirect:
        record = self.repository.find_by_id(record_id, owner_id)
        if record is None or not record.attachment:
            raise NotFound("Attachment not found")

        # only the stored name is ever read from disk; any other slug is bounced
        if slug != record.attachment:
            return AttachmentRedirect(location=attachment_url_for(record, self.listing_path))

        return AttachmentFile(
            name=record.attachment,
            content=self.store.read(record.attachment),
            media_type=guess_media_type(record.attachment),
        )
