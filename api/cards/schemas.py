"""
Card API schemas (request/response models).

The `allData` metadata document is parsed once into `CardCreateRequest`.
Inclusion flags are resolved at parse time: a sub-event section is only
present on the model when its `add<Kind>Details` flag is true, and the family
list is emptied when the family section is disabled.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import (
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

SAME_AS_WEDDING_ADDRESS = "Same as Wedding address"
SUB_EVENT_KINDS = ("engagement", "sangeet", "haldi")

AttachmentRole = Literal["brideImage", "groomImage", "audio", "gallery", "familyMemberImage"]


def _text(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        raise ValueError("expected a text value")
    return str(value).strip()


def _flag(value: object) -> object:
    return False if value is None else value


Text = Annotated[str, BeforeValidator(_text)]
Flag = Annotated[bool, BeforeValidator(_flag)]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class SubEventDetails(_CamelModel):
    date: Text = ""
    raw_date: Text = ""
    time: Text = ""
    address: Text = ""


class EventDetails(_CamelModel):
    event_name: Text = ""
    event_date: Text = ""
    raw_event_date: Text = Field(
        default="",
        validation_alias=AliasChoices("raw_eventDate", "rawEventDate", "raw_event_date"),
    )
    event_time: Text = ""
    event_address: Text = ""
    event_address_google_map_link: Text = ""

    add_engagement_details: Flag = False
    add_sangeet_details: Flag = False
    add_haldi_details: Flag = False
    add_family_details: Flag = False

    is_engagement_address_same_as_wedding: Flag = False
    is_sangeet_address_same_as_wedding: Flag = False
    is_haldi_address_same_as_wedding: Flag = False

    priority_between_bride_and_groom: Text = ""
    priority_between_family: Text = ""

    engagement: SubEventDetails | None = None
    sangeet: SubEventDetails | None = None
    haldi: SubEventDetails | None = None

    @model_validator(mode="before")
    @classmethod
    def _lift_sub_events(cls, data: Any) -> Any:
        # Wire format nests sections as subEvents.<kind>Details with <kind>-prefixed keys.
        if not isinstance(data, dict):
            return data
        sub_events = data.get("subEvents") or {}
        if not isinstance(sub_events, dict):
            raise ValueError("subEvents must be an object.")

        lifted = dict(data)
        for kind in SUB_EVENT_KINDS:
            section = sub_events.get(f"{kind}Details")
            if section is None:
                continue
            if not isinstance(section, dict):
                raise ValueError(f"{kind}Details must be an object.")
            lifted[kind] = {
                "date": section.get(f"{kind}Date"),
                "raw_date": section.get(f"raw_{kind}Date"),
                "time": section.get(f"{kind}Time"),
                "address": section.get(f"{kind}Address"),
            }
        return lifted

    @model_validator(mode="after")
    def _apply_inclusion_flags(self) -> "EventDetails":
        for kind in SUB_EVENT_KINDS:
            if not getattr(self, f"add_{kind}_details"):
                setattr(self, kind, None)
            elif getattr(self, kind) is None:
                raise ValueError(f"{kind}Details is required when add{kind.title()}Details is true.")
        return self

    def included_sub_events(self) -> dict[str, SubEventDetails]:
        """
        Sub-events to create, keyed by kind, with "same as wedding" addresses resolved.
        """
        resolved: dict[str, SubEventDetails] = {}
        for kind in SUB_EVENT_KINDS:
            details: SubEventDetails | None = getattr(self, kind)
            if details is None:
                continue
            if getattr(self, f"is_{kind}_address_same_as_wedding"):
                details = details.model_copy(update={"address": SAME_AS_WEDDING_ADDRESS})
            resolved[kind] = details
        return resolved


class PartyDetails(_CamelModel):
    first_name: Text = ""
    last_name: Text = ""
    social_media_links: list[dict[str, Any]] = Field(default_factory=list)

    @field_validator("social_media_links", mode="before")
    @classmethod
    def _normalize_links(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, dict):
            return [value]
        if isinstance(value, list):
            return [item for item in value if isinstance(item, dict)]
        return value

    def social_link(self, key: str) -> str:
        # Clients send one {"<network>Link": url} object per network; position is not significant.
        for entry in self.social_media_links:
            if key in entry:
                return _text(entry[key])
        return ""


class FamilyMemberDetails(_CamelModel):
    family_member_name: Text = ""
    family_member_relation: Text = ""


class ManifestEntry(BaseModel):
    role: AttachmentRole
    count: int = Field(..., ge=0)


class CardCreateRequest(_CamelModel):
    user_id: Text = Field(..., min_length=1, max_length=200)
    card_link: Text = Field(..., min_length=1, max_length=500)
    card_status: Text = "draft"
    payment_status: Text = "pending"
    selected_template: Text = ""

    event_details: EventDetails
    bride_details: PartyDetails
    groom_details: PartyDetails
    family_details: list[FamilyMemberDetails] = Field(default_factory=list)

    attachment_manifest: list[ManifestEntry] | None = None

    @field_validator("family_details", mode="before")
    @classmethod
    def _default_family(cls, value: Any) -> Any:
        return [] if value is None else value

    @model_validator(mode="after")
    def _apply_family_flag(self) -> "CardCreateRequest":
        if not self.event_details.add_family_details:
            self.family_details = []
        return self

    def inclusion_flags(self) -> dict[str, bool]:
        """
        Requested inclusion per event-level flag, keyed by branch name.
        """
        event = self.event_details
        return {
            "engagement": event.add_engagement_details,
            "sangeet": event.add_sangeet_details,
            "haldi": event.add_haldi_details,
            "family": event.add_family_details,
        }


class CardCreationReport(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    message: str = "New Card Created successfully"
    card_id: int
    event_id: int
    is_engagement_details_saved: bool = False
    is_sangeet_details_saved: bool = False
    is_haldi_details_saved: bool = False
    is_bride_details_saved: bool = False
    is_groom_details_saved: bool = False
    is_photo_gallery_saved: bool = False
    is_audio_file_saved: bool = False
    is_family_details_saved: bool = False
    failed_branches: dict[str, str] = Field(default_factory=dict)


class CardUpdateRequest(_CamelModel):
    user_id: Text = Field(..., min_length=1, max_length=200)
    card_status: str | None = Field(default=None, min_length=1, max_length=100)
    payment_status: str | None = Field(default=None, min_length=1, max_length=100)
    selected_template: str | None = Field(default=None, max_length=200)

    def changes(self) -> dict[str, str]:
        fields = {
            "card_status": self.card_status,
            "payment_status": self.payment_status,
            "selected_template": self.selected_template,
        }
        return {key: value for key, value in fields.items() if value is not None}
