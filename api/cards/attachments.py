"""
Attachment reading and classification.

Binary parts are addressed by their multipart field name:
- brideActualImage / groomActualImage / userAudioFile: single-role parts
- photoGallery_<anything>: gallery items, kept in submission order
- familyMemberImage_<index>: portrait for familyDetails[index]

Unknown, empty or out-of-range parts are ignored.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from fastapi import HTTPException, UploadFile

from . import errors, schemas

BRIDE_IMAGE_FIELD = "brideActualImage"
GROOM_IMAGE_FIELD = "groomActualImage"
AUDIO_FIELD = "userAudioFile"
GALLERY_PREFIX = "photoGallery_"
FAMILY_IMAGE_PREFIX = "familyMemberImage_"

DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024  # 10 MiB per part


@dataclass(frozen=True)
class Attachment:
    field_name: str
    filename: str
    content_type: str | None
    data: bytes


@dataclass
class ClassifiedAttachments:
    bride_image: Attachment | None = None
    groom_image: Attachment | None = None
    audio: Attachment | None = None
    gallery: list[Attachment] = field(default_factory=list)
    family_images: dict[int, Attachment] = field(default_factory=dict)

    def missing_mandatory(self) -> list[str]:
        missing: list[str] = []
        if self.bride_image is None:
            missing.append("brideImage")
        if self.groom_image is None:
            missing.append("groomImage")
        return missing

    def role_counts(self) -> dict[str, int]:
        return {
            "brideImage": int(self.bride_image is not None),
            "groomImage": int(self.groom_image is not None),
            "audio": int(self.audio is not None),
            "gallery": len(self.gallery),
            "familyMemberImage": len(self.family_images),
        }


def _family_index(field_name: str) -> int | None:
    suffix = field_name[len(FAMILY_IMAGE_PREFIX):]
    if not suffix.isdigit():
        return None
    return int(suffix)


def classify(attachments: list[Attachment], *, family_count: int) -> ClassifiedAttachments:
    """
    Partition parts into roles. First non-empty part wins for single-slot roles.
    """
    result = ClassifiedAttachments()
    for part in attachments:
        if not part.data:
            continue
        name = part.field_name

        if name == BRIDE_IMAGE_FIELD:
            if result.bride_image is None:
                result.bride_image = part
        elif name == GROOM_IMAGE_FIELD:
            if result.groom_image is None:
                result.groom_image = part
        elif name == AUDIO_FIELD:
            if result.audio is None:
                result.audio = part
        elif name.startswith(GALLERY_PREFIX):
            result.gallery.append(part)
        elif name.startswith(FAMILY_IMAGE_PREFIX):
            index = _family_index(name)
            if index is not None and index < family_count:
                result.family_images.setdefault(index, part)
    return result


def check_manifest(
    classified: ClassifiedAttachments,
    manifest: list[schemas.ManifestEntry] | None,
) -> None:
    """
    Compare declared (role, count) pairs against what was classified.

    Roles the client did not declare are not checked.
    """
    if manifest is None:
        return

    declared: dict[str, int] = {}
    for entry in manifest:
        if entry.role in declared:
            raise errors.MalformedRequest(f"attachmentManifest declares '{entry.role}' more than once.")
        declared[entry.role] = entry.count

    counts = classified.role_counts()
    mismatches = [
        f"{role} expected {expected}, got {counts[role]}"
        for role, expected in declared.items()
        if counts[role] != expected
    ]
    if mismatches:
        raise errors.MalformedRequest("Attachments do not match attachmentManifest: " + "; ".join(mismatches))


def max_upload_bytes_from_env() -> int:
    raw = os.environ.get("MAX_UPLOAD_BYTES", "").strip()
    if not raw:
        return DEFAULT_MAX_UPLOAD_BYTES
    try:
        value = int(raw)
    except ValueError:
        return DEFAULT_MAX_UPLOAD_BYTES
    return value if value > 0 else DEFAULT_MAX_UPLOAD_BYTES


async def read_attachment(field_name: str, file: UploadFile, *, max_bytes: int) -> Attachment:
    """
    Buffer one multipart file part in memory, enforcing a maximum size.
    """
    chunk_size = 1024 * 1024  # 1 MiB
    buf = bytearray()

    while True:
        chunk = await file.read(chunk_size)
        if not chunk:
            break
        buf.extend(chunk)
        if len(buf) > max_bytes:
            raise HTTPException(
                status_code=413,
                detail=f"Attachment '{field_name}' is too large. Max is {max_bytes} bytes.",
            )

    return Attachment(
        field_name=field_name,
        filename=file.filename or field_name,
        content_type=file.content_type,
        data=bytes(buf),
    )
