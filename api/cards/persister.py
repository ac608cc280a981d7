"""
Card graph persistence.

The root (card + event) is written first in one transaction. Everything else
hangs off the root as an independent branch:

    engagement, sangeet, haldi, bride, groom, gallery, audio, family

Branches run concurrently, each yields a BranchResult, and a failing branch
never touches its siblings or the root. Nothing is rolled back.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable

from . import errors, media, repository, schemas
from .attachments import Attachment, ClassifiedAttachments

BRANCHES = ("engagement", "sangeet", "haldi", "bride", "groom", "gallery", "audio", "family")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RootRecords:
    card_id: int
    event_id: int
    user_id: str


@dataclass(frozen=True)
class BranchResult:
    branch: str
    saved: bool
    reason: str | None = None
    created: int = 0

    @classmethod
    def ok(cls, branch: str, created: int = 1) -> "BranchResult":
        return cls(branch=branch, saved=True, created=created)

    @classmethod
    def skipped(cls, branch: str) -> "BranchResult":
        return cls(branch=branch, saved=False)

    @classmethod
    def failed(cls, branch: str, reason: str, created: int = 0) -> "BranchResult":
        return cls(branch=branch, saved=False, reason=reason, created=created)


def _event_fields(event: schemas.EventDetails) -> dict[str, object]:
    return {
        "event_name": event.event_name,
        "event_date": event.event_date,
        "raw_event_date": event.raw_event_date,
        "event_time": event.event_time,
        "event_address": event.event_address,
        "event_address_map_link": event.event_address_google_map_link,
        "add_engagement_details": event.add_engagement_details,
        "add_sangeet_details": event.add_sangeet_details,
        "add_haldi_details": event.add_haldi_details,
        "add_family_details": event.add_family_details,
        "is_engagement_address_same_as_wedding": event.is_engagement_address_same_as_wedding,
        "is_sangeet_address_same_as_wedding": event.is_sangeet_address_same_as_wedding,
        "is_haldi_address_same_as_wedding": event.is_haldi_address_same_as_wedding,
        "priority_between_bride_and_groom": event.priority_between_bride_and_groom,
        "priority_between_family": event.priority_between_family,
    }


async def persist_root(request: schemas.CardCreateRequest) -> RootRecords:
    card_id, event_id = await repository.create_card_and_event(
        user_id=request.user_id,
        card_link=request.card_link,
        card_status=request.card_status,
        payment_status=request.payment_status,
        selected_template=request.selected_template,
        event_fields=_event_fields(request.event_details),
    )
    logger.info("card_root_created card_id=%s event_id=%s user_id=%s", card_id, event_id, request.user_id)
    return RootRecords(card_id=card_id, event_id=event_id, user_id=request.user_id)


async def _persist_sub_event(
    root: RootRecords,
    kind: str,
    details: schemas.SubEventDetails | None,
) -> BranchResult:
    if details is None:
        return BranchResult.skipped(kind)

    await repository.create_sub_event(
        kind,
        card_id=root.card_id,
        event_id=root.event_id,
        user_id=root.user_id,
        event_date=details.date,
        raw_event_date=details.raw_date,
        event_time=details.time,
        address=details.address,
    )
    return BranchResult.ok(kind)


async def _persist_profile(
    root: RootRecords,
    role: str,
    details: schemas.PartyDetails,
    image_url: str,
) -> BranchResult:
    await repository.create_party_profile(
        role,
        card_id=root.card_id,
        event_id=root.event_id,
        user_id=root.user_id,
        first_name=details.first_name,
        last_name=details.last_name,
        instagram_link=details.social_link("instagramLink"),
        facebook_link=details.social_link("facebookLink"),
        youtube_link=details.social_link("youtubeLink"),
        image_url=image_url,
    )
    return BranchResult.ok(role)


async def _persist_gallery(root: RootRecords, parts: list[Attachment]) -> BranchResult:
    if not parts:
        return BranchResult.skipped("gallery")

    outcomes = await media.upload_all([part.data for part in parts], media.photo_gallery_folder())
    items = [
        (ordinal, part.field_name, outcome)
        for ordinal, (part, outcome) in enumerate(zip(parts, outcomes), start=1)
        if isinstance(outcome, str)
    ]
    ids = await repository.create_gallery_items(
        card_id=root.card_id,
        event_id=root.event_id,
        user_id=root.user_id,
        items=items,
    )
    if len(ids) != len(parts):
        return BranchResult.failed("gallery", f"{len(ids)} of {len(parts)} gallery images saved.", created=len(ids))
    return BranchResult.ok("gallery", created=len(ids))


async def _persist_audio(root: RootRecords, part: Attachment | None) -> BranchResult:
    if part is None:
        return BranchResult.skipped("audio")

    audio_url = await media.upload(part.data, media.audio_files_folder(), "audio", filename=part.filename)
    await repository.create_audio_asset(
        card_id=root.card_id,
        event_id=root.event_id,
        user_id=root.user_id,
        audio_url=audio_url,
    )
    return BranchResult.ok("audio")


async def _persist_family(
    root: RootRecords,
    members: list[schemas.FamilyMemberDetails],
    images: dict[int, Attachment],
) -> BranchResult:
    if not members:
        return BranchResult.skipped("family")

    positions = sorted(index for index in images if index < len(members))
    outcomes = await media.upload_all([images[i].data for i in positions], media.family_members_folder())
    portraits = dict(zip(positions, outcomes))

    rows: list[tuple[int, str, str, str]] = []
    for position, member in enumerate(members):
        portrait = portraits.get(position, "")
        if isinstance(portrait, errors.UploadFailure):
            continue
        rows.append((position, member.family_member_name, member.family_member_relation, portrait))

    ids = await repository.create_family_members(
        card_id=root.card_id,
        event_id=root.event_id,
        user_id=root.user_id,
        members=rows,
    )
    if len(ids) != len(members):
        return BranchResult.failed("family", f"{len(ids)} of {len(members)} family members saved.", created=len(ids))
    return BranchResult.ok("family", created=len(ids))


async def _guarded(root: RootRecords, branch: str, work: Awaitable[BranchResult]) -> BranchResult:
    try:
        result = await work
    except errors.CardCreationError as exc:
        logger.warning("card_branch_failed branch=%s card_id=%s reason=%s", branch, root.card_id, exc)
        return BranchResult.failed(branch, str(exc))
    except Exception as exc:
        logger.exception("card_branch_failed branch=%s card_id=%s", branch, root.card_id)
        return BranchResult.failed(branch, f"Unexpected {type(exc).__name__} while saving {branch}.")

    if result.reason:
        logger.warning("card_branch_partial branch=%s card_id=%s reason=%s", branch, root.card_id, result.reason)
    return result


async def persist_branches(
    root: RootRecords,
    request: schemas.CardCreateRequest,
    classified: ClassifiedAttachments,
    *,
    bride_image_url: str,
    groom_image_url: str,
) -> dict[str, BranchResult]:
    """
    Run every branch concurrently and collect one result per branch name.
    """
    sub_events = request.event_details.included_sub_events()
    work: dict[str, Awaitable[BranchResult]] = {
        "engagement": _persist_sub_event(root, "engagement", sub_events.get("engagement")),
        "sangeet": _persist_sub_event(root, "sangeet", sub_events.get("sangeet")),
        "haldi": _persist_sub_event(root, "haldi", sub_events.get("haldi")),
        "bride": _persist_profile(root, "bride", request.bride_details, bride_image_url),
        "groom": _persist_profile(root, "groom", request.groom_details, groom_image_url),
        "gallery": _persist_gallery(root, classified.gallery),
        "audio": _persist_audio(root, classified.audio),
        "family": _persist_family(root, request.family_details, classified.family_images),
    }
    results = await asyncio.gather(*(_guarded(root, branch, coro) for branch, coro in work.items()))
    return {result.branch: result for result in results}


async def reconcile_event_flags(
    root: RootRecords,
    requested: dict[str, bool],
    results: dict[str, BranchResult],
) -> None:
    """
    Clear event inclusion flags whose branch was requested but created no rows.
    A partially saved branch keeps its flag.

    Best-effort: a failure here is logged and does not change the outcome.
    """
    stale = [branch for branch, wanted in requested.items() if wanted and results[branch].created == 0]
    if not stale:
        return
    try:
        await repository.clear_event_flags(root.event_id, branches=stale)
    except Exception:
        logger.exception("event_flag_reconcile_failed event_id=%s branches=%s", root.event_id, stale)
        return
    logger.info("event_flags_cleared event_id=%s branches=%s", root.event_id, ",".join(stale))
