"""
Pydantic schemas for source payloads - runtime validation at boundaries.

Meeting and agenda item payloads are validated before they enter the
database; portal vote payloads are validated before the reconciler sees
them. Catches type errors early instead of failing at SQLite INSERT time.
"""

from typing import Optional, List, Dict, Any
from datetime import date, datetime
from pydantic import AliasChoices, BaseModel, Field, field_validator, ConfigDict

from pipeline.matching import normalize_dashes

AGENDA_ITEM_TYPES = ("ordinance", "resolution", "public_hearing", "new_business", "report", "other")


class AgendaItemSchema(BaseModel):
    """Agenda item from the agenda source - validates before DB storage"""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    item_id: str = Field(validation_alias=AliasChoices("item_id", "id"))
    title: str
    order_num: int = Field(default=0, validation_alias=AliasChoices("order_num", "orderNum", "sequence"))
    type: str = "other"
    reference_number: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("reference_number", "referenceNumber")
    )
    outcome: Optional[str] = None

    @field_validator("item_id", mode="before")
    @classmethod
    def coerce_item_id(cls, v: Any) -> Any:
        """Portals hand out numeric item ids"""
        if isinstance(v, int):
            return str(v)
        return v

    @field_validator("order_num", mode="before")
    @classmethod
    def validate_order_num(cls, v: Any) -> int:
        """Ensure order_num is integer (catches string "3" from APIs)"""
        if v is None:
            return 0
        if isinstance(v, str):
            try:
                return int(v.strip())
            except ValueError:
                raise ValueError(f"order_num must be integer, got string: {v}")
        return int(v)

    @field_validator("item_id", "title")
    @classmethod
    def validate_non_empty(cls, v: str) -> str:
        """Ensure required strings are non-empty"""
        if not v or not v.strip():
            raise ValueError("Field cannot be empty")
        return v.strip()

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v: Any) -> str:
        """Lowercase, spaces to underscores; unknown kinds become 'other'"""
        if not v:
            return "other"
        text = str(v).strip().lower().replace(" ", "_")
        return text if text in AGENDA_ITEM_TYPES else "other"

    @field_validator("reference_number", "outcome", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        text = normalize_dashes(str(v)).strip()
        return text or None


class MeetingSchema(BaseModel):
    """Meeting from the agenda source - validates before DB storage"""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    meeting_id: str = Field(validation_alias=AliasChoices("meeting_id", "id"))
    title: str
    date: date
    agenda_url: Optional[str] = Field(default=None, validation_alias=AliasChoices("agenda_url", "agendaUrl"))
    minutes_url: Optional[str] = Field(default=None, validation_alias=AliasChoices("minutes_url", "minutesUrl"))
    packet_url: Optional[str] = Field(default=None, validation_alias=AliasChoices("packet_url", "packetUrl"))

    @field_validator("date", mode="before")
    @classmethod
    def parse_date(cls, v: Any) -> Any:
        """Accept a date, a datetime, or an ISO string with or without time"""
        if isinstance(v, datetime):
            return v.date()
        if isinstance(v, str):
            text = v.strip()
            try:
                return date.fromisoformat(text[:10])
            except ValueError as e:
                raise ValueError(f"Invalid ISO date string: {v}") from e
        return v

    @field_validator("meeting_id", "title")
    @classmethod
    def validate_non_empty(cls, v: str) -> str:
        """Ensure required strings are non-empty"""
        if not v or not v.strip():
            raise ValueError("Field cannot be empty")
        return v.strip()


class PortalVotesPayload(BaseModel):
    """Vote listing returned by the meeting portal for one event"""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    event_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("event_id", "eventId"))
    votes: List[Dict[str, Any]] = Field(
        default_factory=list, validation_alias=AliasChoices("votes", "items", "outcomes")
    )

    @field_validator("event_id", mode="before")
    @classmethod
    def coerce_event_id(cls, v: Any) -> Any:
        if isinstance(v, int):
            return str(v)
        return v


def validate_meeting_input(meeting_dict: Dict[str, Any]) -> MeetingSchema:
    """
    Validate a meeting payload against schema.

    Raises:
        pydantic.ValidationError: If data doesn't match schema
    """
    return MeetingSchema.model_validate(meeting_dict)


def validate_item_input(item_dict: Dict[str, Any]) -> AgendaItemSchema:
    """
    Validate an agenda item payload against schema.

    Raises:
        pydantic.ValidationError: If data doesn't match schema
    """
    return AgendaItemSchema.model_validate(item_dict)


def validate_portal_votes(payload: Any) -> PortalVotesPayload:
    """
    Validate a portal vote payload (an object with a vote list, or a bare list).

    Raises:
        pydantic.ValidationError: If data doesn't match schema
    """
    if isinstance(payload, list):
        return PortalVotesPayload(votes=payload)
    return PortalVotesPayload.model_validate(payload)
