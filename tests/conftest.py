from __future__ import annotations

import asyncio
import copy
from datetime import datetime, timezone
from typing import Any

import pytest

from cards import errors, repository
from core import cloudinary

BASE_METADATA: dict[str, Any] = {
    "userId": "user-1",
    "cardLink": "riya-weds-arjun",
    "cardStatus": "draft",
    "paymentStatus": "pending",
    "selectedTemplate": "classic-gold",
    "eventDetails": {
        "eventName": "Riya & Arjun",
        "eventDate": "12 December 2026",
        "raw_eventDate": "2026-12-12",
        "eventTime": "18:30",
        "eventAddress": "Palace Grounds, Bengaluru",
        "eventAddressGoogleMapLink": "https://maps.example.com/palace-grounds",
        "addEngagementDetails": True,
        "addSangeetDetails": False,
        "addHaldiDetails": False,
        "addFamilyDetails": False,
        "isEngagementAddressSameAsWedding": False,
        "isSangeetAddressSameAsWedding": False,
        "isHaldiAddressSameAsWedding": False,
        "priorityBetweenBrideAndGroom": "bride",
        "priorityBetweenFamily": "bride",
        "subEvents": {
            "engagementDetails": {
                "engagementDate": "10 December 2026",
                "raw_engagementDate": "2026-12-10",
                "engagementTime": "11:00",
                "engagementAddress": "Taj West End",
            },
            "sangeetDetails": {
                "sangeetDate": "11 December 2026",
                "raw_sangeetDate": "2026-12-11",
                "sangeetTime": "19:00",
                "sangeetAddress": "Leela Palace",
            },
            "haldiDetails": {
                "haldiDate": "11 December 2026",
                "raw_haldiDate": "2026-12-11",
                "haldiTime": "09:00",
                "haldiAddress": "Family home",
            },
        },
    },
    "brideDetails": {
        "firstName": "Riya",
        "lastName": "Sharma",
        "socialMediaLinks": [
            {"instagramLink": "https://instagram.com/riya"},
            {"facebookLink": ""},
            {"youtubeLink": ""},
        ],
    },
    "groomDetails": {
        "firstName": "Arjun",
        "lastName": "Mehta",
        "socialMediaLinks": [
            {"instagramLink": ""},
            {"facebookLink": "https://facebook.com/arjun"},
            {"youtubeLink": "https://youtube.com/@arjun"},
        ],
    },
    "familyDetails": [],
}

TABLES = (
    "cards",
    "events",
    "engagements",
    "sangeets",
    "haldis",
    "brides",
    "grooms",
    "gallery_items",
    "audio_assets",
    "family_members",
)

_SUB_EVENT_TABLES = {"engagement": "engagements", "sangeet": "sangeets", "haldi": "haldis"}
_PROFILE_TABLES = {"bride": "brides", "groom": "grooms"}
_FLAG_COLUMNS = {
    "engagement": "add_engagement_details",
    "sangeet": "add_sangeet_details",
    "haldi": "add_haldi_details",
    "family": "add_family_details",
}


class FakeStore:
    """
    In-memory stand-in for cards.repository with the same call signatures.

    Operation names listed in `fail` raise PersistenceFailure.
    """

    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {name: [] for name in TABLES}
        self.fail: set[str] = set()
        self._next_id = 0

    def _id(self) -> int:
        self._next_id += 1
        return self._next_id

    def _check(self, operation: str) -> None:
        if operation in self.fail:
            raise errors.PersistenceFailure(f"{operation} rejected by store.")

    def total_records(self) -> int:
        return sum(len(rows) for rows in self.tables.values())

    def seed_card(self, *, user_id: str, card_link: str) -> int:
        card_id = self._id()
        self.tables["cards"].append(
            {
                "id": card_id,
                "user_id": user_id,
                "card_link": card_link,
                "card_status": "draft",
                "payment_status": "pending",
                "selected_template": "",
                "created_at": datetime(2026, 10, 1, tzinfo=timezone.utc),
                "updated_at": datetime(2026, 10, 1, tzinfo=timezone.utc),
            }
        )
        return card_id

    async def card_link_exists(self, card_link: str, *, user_id: str) -> bool:
        return any(
            row["card_link"] == card_link and row["user_id"] == user_id for row in self.tables["cards"]
        )

    async def create_card_and_event(
        self,
        *,
        user_id: str,
        card_link: str,
        card_status: str,
        payment_status: str,
        selected_template: str,
        event_fields: dict[str, Any],
    ) -> tuple[int, int]:
        if await self.card_link_exists(card_link, user_id=user_id):
            raise errors.DuplicateCardLink(card_link)
        self._check("create_card_and_event")
        card_id = self.seed_card(user_id=user_id, card_link=card_link)
        self.tables["cards"][-1].update(
            card_status=card_status,
            payment_status=payment_status,
            selected_template=selected_template,
        )
        event_id = self._id()
        self.tables["events"].append({"id": event_id, "card_id": card_id, "user_id": user_id, **event_fields})
        return card_id, event_id

    async def create_sub_event(self, kind: str, **fields: Any) -> int:
        self._check("create_sub_event")
        row_id = self._id()
        self.tables[_SUB_EVENT_TABLES[kind]].append({"id": row_id, **fields})
        return row_id

    async def create_party_profile(self, role: str, **fields: Any) -> int:
        self._check("create_party_profile")
        row_id = self._id()
        self.tables[_PROFILE_TABLES[role]].append({"id": row_id, **fields})
        return row_id

    async def create_gallery_items(
        self, *, card_id: int, event_id: int, user_id: str, items: list[tuple[int, str, str]]
    ) -> list[int]:
        self._check("create_gallery_items")
        ids = []
        for ordinal, label, url in sorted(items):
            row_id = self._id()
            self.tables["gallery_items"].append(
                {
                    "id": row_id,
                    "card_id": card_id,
                    "event_id": event_id,
                    "user_id": user_id,
                    "ordinal": ordinal,
                    "field_label": label,
                    "image_url": url,
                }
            )
            ids.append(row_id)
        return ids

    async def create_audio_asset(self, **fields: Any) -> int:
        self._check("create_audio_asset")
        row_id = self._id()
        self.tables["audio_assets"].append({"id": row_id, **fields})
        return row_id

    async def create_family_members(
        self, *, card_id: int, event_id: int, user_id: str, members: list[tuple[int, str, str, str]]
    ) -> list[int]:
        self._check("create_family_members")
        ids = []
        for position, name, relation, url in sorted(members):
            row_id = self._id()
            self.tables["family_members"].append(
                {
                    "id": row_id,
                    "card_id": card_id,
                    "event_id": event_id,
                    "user_id": user_id,
                    "position": position,
                    "member_name": name,
                    "member_relation": relation,
                    "image_url": url,
                }
            )
            ids.append(row_id)
        return ids

    async def clear_event_flags(self, event_id: int, *, branches: list[str]) -> None:
        self._check("clear_event_flags")
        for event in self.tables["events"]:
            if event["id"] == event_id:
                for branch in branches:
                    event[_FLAG_COLUMNS[branch]] = False

    async def list_cards(self, *, user_id: str, limit: int = 100, offset: int = 0) -> list[dict[str, Any]]:
        rows = [row for row in self.tables["cards"] if row["user_id"] == user_id]
        rows.sort(key=lambda row: row["id"], reverse=True)
        return [dict(row) for row in rows[offset : offset + limit]]

    async def update_card(self, card_id: int, *, user_id: str, changes: dict[str, str]) -> dict[str, Any] | None:
        for row in self.tables["cards"]:
            if row["id"] == card_id and row["user_id"] == user_id:
                row.update(changes)
                return dict(row)
        return None

    async def delete_card(self, card_id: int, *, user_id: str) -> dict[str, Any] | None:
        for row in self.tables["cards"]:
            if row["id"] == card_id and row["user_id"] == user_id:
                self.tables["cards"].remove(row)
                for name in TABLES[1:]:
                    self.tables[name] = [child for child in self.tables[name] if child.get("card_id") != card_id]
                return {"id": card_id}
        return None


class FakeUploader:
    """
    Stand-in for core.cloudinary.upload_media.

    URLs embed the folder and the payload so tests can tell which buffer a
    record points at. `delays` (payload -> seconds) reorders completion.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, str, bytes]] = []
        self.failing_folders: set[str] = set()
        self.failing_payloads: set[bytes] = set()
        self.delays: dict[bytes, float] = {}
        self.completed: list[bytes] = []

    async def upload_media(
        self,
        *,
        data: bytes,
        folder: str,
        resource_type: str = "image",
        filename: str | None = None,
        **_: Any,
    ) -> str:
        self.calls.append((folder, resource_type, data))
        delay = self.delays.get(data, 0.0)
        if delay:
            await asyncio.sleep(delay)
        if folder in self.failing_folders or data in self.failing_payloads:
            raise cloudinary.CloudinaryError(f"Cloudinary upload failed: 500 {folder}")
        self.completed.append(data)
        return f"https://cdn.test/{folder}/{data.decode('utf-8', errors='replace')}"


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def metadata() -> dict[str, Any]:
    return copy.deepcopy(BASE_METADATA)


@pytest.fixture
def store(monkeypatch: pytest.MonkeyPatch) -> FakeStore:
    fake = FakeStore()
    for name in (
        "card_link_exists",
        "create_card_and_event",
        "create_sub_event",
        "create_party_profile",
        "create_gallery_items",
        "create_audio_asset",
        "create_family_members",
        "clear_event_flags",
        "list_cards",
        "update_card",
        "delete_card",
    ):
        monkeypatch.setattr(repository, name, getattr(fake, name))
    return fake


@pytest.fixture
def uploader(monkeypatch: pytest.MonkeyPatch) -> FakeUploader:
    fake = FakeUploader()
    monkeypatch.setattr(cloudinary, "upload_media", fake.upload_media)
    for name in (
        "BRIDE_IMAGES_FOLDER",
        "GROOM_IMAGES_FOLDER",
        "PHOTO_GALLERY_FOLDER",
        "AUDIO_FILES_FOLDER",
        "FAMILY_MEMBERS_FOLDER",
    ):
        monkeypatch.delenv(name, raising=False)
    return fake
