"""
FastAPI router for card endpoints.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Query, Request

from . import attachments, errors, schemas, service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/cards")
async def create_card(request: Request) -> dict:
    """
    Create a card from one multipart bundle.

    - `allData`: JSON metadata (card, event, sub-events, bride, groom, family)
    - file parts named brideActualImage, groomActualImage, userAudioFile,
      photoGallery_<n>, familyMemberImage_<index>

    Field names are only known at runtime, so the form is read directly
    instead of through declared File() parameters.
    """
    form = await request.form()
    try:
        raw_metadata = form.get("allData")
        if raw_metadata is not None and not isinstance(raw_metadata, str):
            raise HTTPException(status_code=400, detail="allData must be a text field.")

        max_bytes = attachments.max_upload_bytes_from_env()
        parts = [
            await attachments.read_attachment(name, value, max_bytes=max_bytes)
            for name, value in form.multi_items()
            if not isinstance(value, str)
        ]
    finally:
        await form.close()

    try:
        report = await service.create_card(raw_metadata, parts)
    except errors.CardCreationError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.to_detail()) from exc
    except Exception as exc:
        logger.exception("card_create_failed")
        raise HTTPException(
            status_code=500,
            detail={"message": "Internal Server Error", "error": f"Unexpected {type(exc).__name__}."},
        ) from exc

    return report.model_dump(by_alias=True)


@router.get("/cards")
async def list_cards(
    user_id: str = Query(..., alias="userId", min_length=1, max_length=200),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
) -> dict:
    """
    List a user's cards, newest first.
    """
    return await service.list_cards(user_id=user_id, limit=limit, offset=offset)


@router.patch("/cards/{card_id}")
async def update_card(card_id: int, payload: schemas.CardUpdateRequest) -> dict:
    return await service.update_card(card_id, payload)


@router.delete("/cards/{card_id}")
async def delete_card(
    card_id: int,
    user_id: str = Query(..., alias="userId", min_length=1, max_length=200),
) -> dict:
    """
    Delete a card owned by the user, together with everything attached to it.
    """
    return await service.delete_card(card_id, user_id=user_id)
