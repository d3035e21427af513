import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any
from urllib.parse import unquote, urlsplit

from app.core.errors import BadRequest, IOFailure, NotFound, ValidationError
from app.models.records import FinancialRecord, RecordFields, UploadPayload
from app.services.attachments import AttachmentStore, attachment_name_from_upload
from app.services.records import RecordRepository

logger = logging.getLogger(__name__)

INTENTS = ("update", "delete", "remove-attachment")

_CURRENCY_RE = re.compile(r"^[A-Za-z]{3}$")

# Amounts keep at most 15 integer digits and 4 decimal places.
AMOUNT_MAX_INTEGER_DIGITS = 15
AMOUNT_MAX_SCALE = 4


@dataclass(frozen=True)
class MutationOutcome:
    intent: str
    record: FinancialRecord
    redirect_to: str | None = None


def parse_amount(value: Any) -> Decimal:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("amount is required")
    if "_" in value:
        raise ValidationError("amount must be a number")
    try:
        amount = Decimal(value.strip())
    except InvalidOperation:
        raise ValidationError("amount must be a number")
    if not amount.is_finite():
        raise ValidationError("amount must be a finite number")
    if amount.adjusted() >= AMOUNT_MAX_INTEGER_DIGITS or -amount.as_tuple().exponent > AMOUNT_MAX_SCALE:
        raise ValidationError("amount is out of range")
    return amount


def resolve_redirect_target(referer: str | None, record_id: str, fallback: str) -> str:
    """Where to send the user after mutating ``record_id``.

    Only the path and query of the referer are kept. A page that still names the
    record is stale once the record changes, so it falls back to the listing.
    """
    target = fallback
    if referer:
        parts = urlsplit(referer)
        if parts.path.startswith("/") and not parts.path.startswith("//"):
            target = parts.path + (f"?{parts.query}" if parts.query else "")
    if record_id in target:
        return fallback
    return target


def attachment_upload(form: Mapping[str, Any]) -> UploadPayload | None:
    value = form.get("attachment")
    if not isinstance(value, UploadPayload):
        return None
    if not value.filename and not value.content:
        return None
    return value


class RecordMutationService:
    """Create/update/delete of one record kind, keeping attachment files and pointers in step.

    There is no transaction spanning the file area and the database, so the
    order of calls is what protects the invariant: a file is always written
    before a row points at it, and a file is only deleted after no row points
    at it any more. A crash in between can leave an orphan file but never a
    dangling pointer.
    """

    def __init__(
        self,
        repository: RecordRepository,
        store: AttachmentStore,
        *,
        default_currency: str = "USD",
        listing_path: str = "/records",
        prune_replaced_attachments: bool = False,
    ) -> None:
        self.repository = repository
        self.store = store
        self.kind = repository.kind
        self.default_currency = default_currency
        self.listing_path = listing_path
        self.prune_replaced_attachments = prune_replaced_attachments

    @property
    def listing_url(self) -> str:
        return f"{self.listing_path}/{self.kind.value}"

    def detail_url(self, record_id: str) -> str:
        return f"{self.listing_url}/{record_id}"

    def parse_fields(self, form: Mapping[str, Any]) -> RecordFields:
        title = form.get("title")
        if not isinstance(title, str) or not title.strip():
            raise ValidationError("title is required")

        description = form.get("description")
        if description is None:
            description = ""
        elif not isinstance(description, str):
            raise ValidationError("description must be text")

        amount = parse_amount(form.get("amount"))

        currency = form.get("currency_code")
        if currency is None or currency == "":
            currency = self.default_currency
        elif not isinstance(currency, str) or not _CURRENCY_RE.fullmatch(currency.strip()):
            raise ValidationError("currency_code must be a three-letter code")

        return RecordFields(
            title=title.strip(),
            description=description.strip(),
            amount=amount,
            currency_code=currency.strip().upper(),
        )

    def _store_upload(self, upload: UploadPayload) -> str:
        name = attachment_name_from_upload(upload.filename)
        self.store.check_size(upload)
        self.store.write(name, upload.content)
        return name

    def _discard_file(self, name: str, reason: str) -> None:
        try:
            self.store.delete(name)
        except IOFailure as exc:
            # the row no longer points at the file; a leftover is only an orphan
            logger.warning("Could not delete attachment %s after %s: %s", name, reason, exc.reason)

    def create(self, owner_id: str, form: Mapping[str, Any]) -> FinancialRecord:
        fields = self.parse_fields(form)
        upload = attachment_upload(form)
        attachment = self._store_upload(upload) if upload else None
        record = self.repository.create(owner_id, fields, attachment=attachment)
        logger.info("Created %s %s for user %s", self.kind.value, record.id, owner_id)
        return record

    def update(self, record_id: str, owner_id: str, form: Mapping[str, Any]) -> FinancialRecord:
        fields = self.parse_fields(form)
        upload = attachment_upload(form)

        current = self.repository.find_by_id(record_id, owner_id)
        if current is None:
            raise NotFound(f"{self.kind.label} not found")

        attachment = self._store_upload(upload) if upload else None
        record = self.repository.update(record_id, owner_id, fields, attachment=attachment)
        if record is None:
            raise NotFound(f"{self.kind.label} not found")

        if (
            self.prune_replaced_attachments
            and attachment
            and current.attachment
            and current.attachment != attachment
        ):
            self._discard_file(current.attachment, "replacement")

        logger.info("Updated %s %s for user %s", self.kind.value, record.id, owner_id)
        return record

    def remove_attachment(self, record_id: str, owner_id: str, form: Mapping[str, Any]) -> FinancialRecord:
        attachment_url = form.get("attachmentUrl")
        if not isinstance(attachment_url, str) or not attachment_url.strip():
            raise ValidationError("attachmentUrl is required")
        file_name = attachment_url.strip().rstrip("/").split("/")[-1]
        if not file_name:
            raise ValidationError("attachmentUrl does not name a file")

        current = self.repository.find_by_id(record_id, owner_id)
        if current is None or not current.attachment:
            raise NotFound("Attachment not found")
        if current.attachment not in (file_name, unquote(file_name)):
            raise ValidationError("attachmentUrl does not match the current attachment")

        record = self.repository.clear_attachment(record_id, owner_id, current.attachment)
        if record is None:
            raise NotFound("Attachment not found")

        self._discard_file(current.attachment, "attachment removal")
        logger.info("Removed attachment from %s %s for user %s", self.kind.value, record.id, owner_id)
        return record

    def delete(self, record_id: str, owner_id: str, referer: str | None = None) -> MutationOutcome:
        record = self.repository.delete(record_id, owner_id)
        if record is None:
            raise NotFound(f"{self.kind.label} not found")

        if record.attachment:
            self._discard_file(record.attachment, "record deletion")

        logger.info("Deleted %s %s for user %s", self.kind.value, record.id, owner_id)
        return MutationOutcome(
            intent="delete",
            record=record,
            redirect_to=resolve_redirect_target(referer, record.id, self.listing_url),
        )

    def apply(
        self,
        intent: Any,
        record_id: str,
        owner_id: str,
        form: Mapping[str, Any],
        referer: str | None = None,
    ) -> MutationOutcome:
        if intent == "update":
            record = self.update(record_id, owner_id, form)
            return MutationOutcome(
                intent="update",
                record=record,
                redirect_to=resolve_redirect_target(referer, record.id, self.listing_url),
            )
        if intent == "delete":
            return self.delete(record_id, owner_id, referer)
        if intent == "remove-attachment":
            return MutationOutcome(intent="remove-attachment", record=self.remove_attachment(record_id, owner_id, form))
        raise BadRequest("Unknown intent")
