"""
Media uploads to object storage.

Every binary that ends up on a card record goes through `upload`, which returns
the durable URL stored in place of the raw bytes.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Literal

from core import cloudinary

from . import errors

MediaKind = Literal["image", "audio"]

# Cloudinary files audio under its "video" resource type.
_RESOURCE_TYPES: dict[str, str] = {"image": "image", "audio": "video"}

logger = logging.getLogger(__name__)


def _folder(name: str, default: str) -> str:
    return os.environ.get(name, default).strip() or default


def bride_images_folder() -> str:
    return _folder("BRIDE_IMAGES_FOLDER", "wedding-cards/bride-images")


def groom_images_folder() -> str:
    return _folder("GROOM_IMAGES_FOLDER", "wedding-cards/groom-images")


def photo_gallery_folder() -> str:
    return _folder("PHOTO_GALLERY_FOLDER", "wedding-cards/photo-gallery")


def audio_files_folder() -> str:
    return _folder("AUDIO_FILES_FOLDER", "wedding-cards/audio-files")


def family_members_folder() -> str:
    return _folder("FAMILY_MEMBERS_FOLDER", "wedding-cards/family-members")


async def upload(
    buffer: bytes,
    target_folder: str,
    media_kind: MediaKind = "image",
    *,
    filename: str | None = None,
) -> str:
    """
    Upload one buffer and return its durable URL.

    Raises UploadFailure on empty input or any store/transport error.
    """
    if not buffer:
        raise errors.UploadFailure("Upload buffer is empty.")
    if not (target_folder or "").strip():
        raise errors.UploadFailure("Upload target folder is empty.")
    resource_type = _RESOURCE_TYPES.get(media_kind)
    if resource_type is None:
        raise errors.UploadFailure(f"Unsupported media kind '{media_kind}'.")

    try:
        url = await cloudinary.upload_media(
            data=buffer,
            folder=target_folder,
            resource_type=resource_type,
            filename=filename,
        )
    except cloudinary.CloudinaryError as exc:
        logger.warning("media_upload_failed folder=%s kind=%s error=%s", target_folder, media_kind, exc)
        raise errors.UploadFailure(str(exc)) from exc

    logger.debug("media_uploaded folder=%s kind=%s bytes=%s", target_folder, media_kind, len(buffer))
    return url


async def upload_all(
    buffers: list[bytes],
    target_folder: str,
    media_kind: MediaKind = "image",
) -> list[str | errors.UploadFailure]:
    """
    Upload buffers concurrently.

    The result list lines up with `buffers` by index whatever order the uploads
    finish in; each slot holds a URL or that item's UploadFailure.
    """
    outcomes = await asyncio.gather(
        *(upload(buffer, target_folder, media_kind) for buffer in buffers),
        return_exceptions=True,
    )

    results: list[str | errors.UploadFailure] = []
    for outcome in outcomes:
        if isinstance(outcome, errors.UploadFailure):
            results.append(outcome)
        elif isinstance(outcome, BaseException):
            raise outcome
        else:
            results.append(outcome)
    return results
