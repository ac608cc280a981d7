"""
Card creation error taxonomy.

User-facing rejections (4xx) and faults (5xx) share one base class so the
router can map any of them to an HTTP response in one place.
"""

from __future__ import annotations

from typing import Any


class CardCreationError(RuntimeError):
    status_code = 500
    reason = "CardCreationError"

    def to_detail(self) -> dict[str, Any]:
        return {"reason": self.reason, "message": str(self)}


class MalformedRequest(CardCreationError):
    status_code = 400
    reason = "MalformedRequest"


class MissingRequiredMedia(CardCreationError):
    status_code = 400
    reason = "MissingRequiredMedia"

    def __init__(self, missing: list[str]):
        super().__init__("Bride or Groom image is not found.")
        self.missing = list(missing)

    def to_detail(self) -> dict[str, Any]:
        return {**super().to_detail(), "missing": self.missing}


class DuplicateCardLink(CardCreationError):
    status_code = 409
    reason = "DuplicateCardLink"

    def __init__(self, card_link: str):
        super().__init__("Card with same link already exists.")
        self.card_link = card_link

    def to_detail(self) -> dict[str, Any]:
        return {**super().to_detail(), "cardLink": self.card_link, "cardLinkExistsInDB": True}


class UploadFailure(CardCreationError):
    reason = "UploadFailure"

    def to_detail(self) -> dict[str, Any]:
        return {"message": "Internal Server Error", "error": str(self)}


class PersistenceFailure(CardCreationError):
    reason = "PersistenceFailure"

    def to_detail(self) -> dict[str, Any]:
        return {"message": "Internal Server Error", "error": str(self)}
