"""
Card creation orchestration.

Flow (strict order, no stage repeats):
1) Parse the `allData` metadata into a typed request
2) Classify attachments, check the mandatory bride/groom portraits, then the manifest
3) Upload both portraits (one failing cancels the other)
4) Reject a link the user already has
5) Persist the root card + event
6) Persist every optional branch concurrently
7) Assemble the per-branch report

Anything failing in 1-5 aborts the request with nothing written. Failures in 6
only flip that branch's flag to false; the root stays.
"""

from __future__ import annotations

import asyncio
import logging

from fastapi import HTTPException
from pydantic import ValidationError

from . import attachments, errors, media, persister, repository, schemas
from .attachments import Attachment

logger = logging.getLogger(__name__)

_REPORT_FLAGS = {
    "engagement": "is_engagement_details_saved",
    "sangeet": "is_sangeet_details_saved",
    "haldi": "is_haldi_details_saved",
    "bride": "is_bride_details_saved",
    "groom": "is_groom_details_saved",
    "gallery": "is_photo_gallery_saved",
    "audio": "is_audio_file_saved",
    "family": "is_family_details_saved",
}


def _describe_validation_error(exc: ValidationError) -> str:
    problems = []
    for err in exc.errors()[:5]:
        location = ".".join(str(part) for part in err.get("loc", ())) or "allData"
        problems.append(f"{location}: {err.get('msg', 'invalid value')}")
    return "; ".join(problems)


def parse_bundle(raw_metadata: str | None) -> schemas.CardCreateRequest:
    raw = (raw_metadata or "").strip()
    if not raw:
        raise errors.MalformedRequest("allData is required.")
    try:
        return schemas.CardCreateRequest.model_validate_json(raw)
    except ValidationError as exc:
        raise errors.MalformedRequest(f"allData is invalid: {_describe_validation_error(exc)}") from exc


def build_report(root: persister.RootRecords, results: dict[str, persister.BranchResult]) -> schemas.CardCreationReport:
    flags = {field: results[branch].saved for branch, field in _REPORT_FLAGS.items()}
    failed = {branch: result.reason for branch, result in results.items() if result.reason}
    return schemas.CardCreationReport(
        card_id=root.card_id,
        event_id=root.event_id,
        failed_branches=failed,
        **flags,
    )


async def _upload_portraits(bride_image: Attachment, groom_image: Attachment) -> tuple[str, str]:
    """
    Upload both portraits concurrently. If one fails the other is cancelled.
    """
    uploads = [
        asyncio.ensure_future(
            media.upload(bride_image.data, media.bride_images_folder(), filename=bride_image.filename)
        ),
        asyncio.ensure_future(
            media.upload(groom_image.data, media.groom_images_folder(), filename=groom_image.filename)
        ),
    ]
    try:
        bride_image_url, groom_image_url = await asyncio.gather(*uploads)
    except BaseException:
        for task in uploads:
            task.cancel()
        raise
    return bride_image_url, groom_image_url


async def create_card(raw_metadata: str | None, parts: list[Attachment]) -> schemas.CardCreationReport:
    request = parse_bundle(raw_metadata)

    classified = attachments.classify(parts, family_count=len(request.family_details))

    # Missing portraits win over a manifest mismatch that only reflects them.
    bride_image = classified.bride_image
    groom_image = classified.groom_image
    if bride_image is None or groom_image is None:
        raise errors.MissingRequiredMedia(classified.missing_mandatory())

    attachments.check_manifest(classified, request.attachment_manifest)

    bride_image_url, groom_image_url = await _upload_portraits(bride_image, groom_image)

    if await repository.card_link_exists(request.card_link, user_id=request.user_id):
        logger.info("card_link_duplicate user_id=%s card_link=%s", request.user_id, request.card_link)
        raise errors.DuplicateCardLink(request.card_link)

    root = await persister.persist_root(request)

    results = await persister.persist_branches(
        root,
        request,
        classified,
        bride_image_url=bride_image_url,
        groom_image_url=groom_image_url,
    )
    await persister.reconcile_event_flags(root, request.inclusion_flags(), results)

    report = build_report(root, results)
    logger.info(
        "card_created card_id=%s event_id=%s saved=%s failed=%s",
        root.card_id,
        root.event_id,
        ",".join(branch for branch, result in results.items() if result.saved),
        ",".join(report.failed_branches),
    )
    return report


async def list_cards(*, user_id: str, limit: int, offset: int) -> dict:
    user_id = (user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=400, detail="userId is required.")
    rows = await repository.list_cards(user_id=user_id, limit=limit, offset=offset)
    return {"cards": rows, "count": len(rows), "limit": limit, "offset": offset}


async def update_card(card_id: int, payload: schemas.CardUpdateRequest) -> dict:
    changes = payload.changes()
    if not changes:
        raise HTTPException(
            status_code=400,
            detail="Provide at least one of cardStatus, paymentStatus, selectedTemplate.",
        )
    row = await repository.update_card(card_id, user_id=payload.user_id, changes=changes)
    if row is None:
        raise HTTPException(status_code=404, detail="Card not found.")
    return {"cardUpdated": True, "card": row}


async def delete_card(card_id: int, *, user_id: str) -> dict:
    user_id = (user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=400, detail="userId is required.")
    row = await repository.delete_card(card_id, user_id=user_id)
    if row is None:
        raise HTTPException(status_code=404, detail="Card not found.")
    logger.info("card_deleted card_id=%s user_id=%s", card_id, user_id)
    return {"ok": True, "cardId": int(row["id"])}
