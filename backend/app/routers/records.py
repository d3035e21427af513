from typing import Any
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse, Response
from starlette.datastructures import UploadFile

from app.core.errors import BadRequest, NotFound
from app.dependencies import current_user_id, get_app_state, optional_user_id
from app.models.records import (
    LatestRecordsResponse,
    MutationResponse,
    RecordKind,
    RecordListResponse,
    RecordResponse,
    UploadPayload,
)
from app.services.records import serialize_record
from app.services.retrieval import AttachmentRedirect
from app.services.state import AppState, list_cache_prefix

router = APIRouter(prefix="/records")

FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


async def read_submission(req: Request) -> dict[str, Any]:
    """Form fields of a POST, with file parts buffered into ``UploadPayload``.

    Repeated fields keep their first value.
    """
    content_type = req.headers.get("content-type", "").split(";")[0].strip().lower()
    if content_type not in FORM_CONTENT_TYPES:
        raise BadRequest("Expected a form submission")

    data: dict[str, Any] = {}
    async with req.form() as form:
        for key, value in form.multi_items():
            if key in data:
                continue
            if isinstance(value, UploadFile):
                data[key] = UploadPayload(
                    filename=value.filename or "",
                    content=await value.read(),
                )
            else:
                data[key] = value
    return data


@router.get("/latest", response_model=LatestRecordsResponse)
def latest_records(
    user_id: str = Depends(current_user_id),
    state: AppState = Depends(get_app_state),
):
    latest = {}
    for kind in RecordKind:
        record = state.repository(kind).latest(user_id)
        latest[kind.value] = serialize_record(record, state.settings.listing_path) if record else None
    return {"latest": latest}


@router.get("/{kind}", response_model=RecordListResponse)
def list_records(
    kind: RecordKind,
    q: str | None = Query(None, max_length=64),
    user_id: str = Depends(current_user_id),
    state: AppState = Depends(get_app_state),
):
    query = (q or "").strip() or None
    cache_key = f"{list_cache_prefix(user_id, kind)}list:{query or ''}"
    records = state.cache.get(cache_key)
    if records is None:
        records = [
            serialize_record(record, state.settings.listing_path)
            for record in state.repository(kind).list(user_id, title_contains=query)
        ]
        state.cache.set(cache_key, records, state.settings.list_cache_ttl)
    return {"kind": kind, "q": query, "records": records}


@router.post("/{kind}")
async def create_record(
    kind: RecordKind,
    req: Request,
    user_id: str = Depends(current_user_id),
    state: AppState = Depends(get_app_state),
):
    submission = await read_submission(req)
    service = state.mutations(kind)
    record = service.create(user_id, submission)
    state.invalidate_records(user_id, kind)
    return RedirectResponse(service.detail_url(record.id), status_code=302)


@router.get("/{kind}/{record_id}", response_model=RecordResponse)
def get_record(
    kind: RecordKind,
    record_id: str,
    user_id: str = Depends(current_user_id),
    state: AppState = Depends(get_app_state),
):
    record = state.repository(kind).find_by_id(record_id, user_id)
    if record is None:
        raise NotFound(f"{kind.label} not found")
    return {"record": serialize_record(record, state.settings.listing_path)}


@router.post("/{kind}/{record_id}")
async def mutate_record(
    kind: RecordKind,
    record_id: str,
    req: Request,
    user_id: str = Depends(current_user_id),
    state: AppState = Depends(get_app_state),
):
    submission = await read_submission(req)
    outcome = state.mutations(kind).apply(
        submission.get("intent"),
        record_id,
        user_id,
        submission,
        referer=req.headers.get("referer"),
    )
    state.invalidate_records(user_id, kind)

    if outcome.intent == "delete":
        return RedirectResponse(outcome.redirect_to, status_code=302)
    return MutationResponse(
        record=serialize_record(outcome.record, state.settings.listing_path),
        redirect_to=outcome.redirect_to,
    )


@router.get("/{kind}/{record_id}/attachments/{slug:path}")
def get_attachment(
    kind: RecordKind,
    record_id: str,
    slug: str,
    req: Request,
    user_id: str | None = Depends(optional_user_id),
    state: AppState = Depends(get_app_state),
):
    if user_id is None:
        query = urlencode({"redirectTo": req.url.path})
        return RedirectResponse(f"{state.settings.login_path}?{query}", status_code=302)

    resolved = state.attachment_gate(kind).resolve(record_id, user_id, slug)
    if isinstance(resolved, AttachmentRedirect):
        return RedirectResponse(resolved.location, status_code=302)
    return Response(content=resolved.content, media_type=resolved.media_type, headers=resolved.headers)
