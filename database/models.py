"""
Database Models for civicledger

Pydantic dataclasses with runtime validation for the persistent entities:
meetings, agenda items, ordinances, ordinance-meeting links and resolutions.
Dates are calendar dates; the store keeps them as ISO 'YYYY-MM-DD' text.
"""

import sqlite3
from typing import Optional
from datetime import date, datetime
from pydantic.dataclasses import dataclass
from dataclasses import asdict

from config import get_logger
from exceptions import ValidationError

logger = get_logger(__name__).bind(component="civicledger")


# --- Vocabularies ---

MEETING_STATUSES = {"upcoming", "past"}

AGENDA_ITEM_TYPES = {
    "ordinance",
    "resolution",
    "public_hearing",
    "new_business",
    "report",
    "other",
}

ORDINANCE_STATUSES = {
    "proposed",
    "first_reading",
    "second_reading",
    "adopted",
    "denied",
    "rejected",
    "tabled",
}

# Terminal statuses are never changed by reconciliation writes
TERMINAL_ORDINANCE_STATUSES = {"adopted", "denied", "rejected", "tabled"}

ORDINANCE_STATUS_RANK = {
    "proposed": 0,
    "first_reading": 1,
    "second_reading": 2,
    "adopted": 3,
    "denied": 3,
    "rejected": 3,
    "tabled": 3,
}

# Actions detected from agenda titles and assigned by inference
TITLE_ACTIONS = {
    "introduced",
    "first_reading",
    "second_reading",
    "adopted",
    "amended",
    "tabled",
    "denied",
    "withdrawn",
    "discussed",
}

# Actions only ever written from an authoritative vote
VOTE_ACTIONS = {"first_reading_passed", "failed", "voted"}

LINK_ACTIONS = TITLE_ACTIONS | VOTE_ACTIONS

RESOLUTION_STATUSES = {"proposed", "pending_minutes", "adopted", "rejected", "tabled"}

DISPOSITIONS = {"codified", "omit"}


def parse_iso_date(value) -> Optional[date]:
    """Parse a stored date value into a date (None passes through)

    Accepts date, datetime, 'YYYY-MM-DD' and full ISO timestamps; only the
    calendar date is kept.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        raise ValidationError(f"Invalid ISO date: {value}", field="date", value=value)


def format_iso_date(value: Optional[date]) -> Optional[str]:
    """Format a date for storage"""
    return value.isoformat() if value else None


def _check_vocabulary(value: str, allowed: set, field: str):
    if value not in allowed:
        raise ValidationError(
            f"Invalid {field}: {value}. Must be one of: {sorted(allowed)}",
            field=field,
            value=value
        )


# --- Domain Dataclasses (with runtime validation) ---


@dataclass
class Meeting:
    """Meeting entity - written only by the ingestion boundary

    status is derived from the meeting date relative to "today" at ingestion
    and can be recomputed (MeetingRepository.refresh_statuses).
    """

    id: str
    date: date
    title: str
    status: str = "upcoming"  # upcoming, past
    agenda_url: Optional[str] = None
    minutes_url: Optional[str] = None
    packet_url: Optional[str] = None

    def __post_init__(self):
        """Validate meeting data after initialization"""
        if not self.id or not self.id.strip():
            raise ValidationError("Meeting must have an id", field="id", value=self.id)
        _check_vocabulary(self.status, MEETING_STATUSES, "status")

    @classmethod
    def from_db_row(cls, row: sqlite3.Row) -> "Meeting":
        return cls(
            id=row["id"],
            date=parse_iso_date(row["date"]),
            title=row["title"],
            status=row["status"],
            agenda_url=row["agenda_url"],
            minutes_url=row["minutes_url"],
            packet_url=row["packet_url"],
        )

    def is_past(self, today: Optional[date] = None) -> bool:
        return self.date < (today or date.today())

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization"""
        data = asdict(self)
        data["date"] = self.date.isoformat()
        return data


@dataclass
class AgendaItem:
    """Agenda item entity - individual items within a meeting

    reference_number is the ordinance or resolution number printed on the
    agenda (e.g. "2024-15", "25-040"), when the agenda carries one.
    outcome is free text ("Approved 5-0") recorded by the agenda source.
    """

    id: str
    meeting_id: str
    title: str
    order_num: int = 0
    type: str = "other"
    reference_number: Optional[str] = None
    outcome: Optional[str] = None

    def __post_init__(self):
        """Validate agenda item data after initialization"""
        _check_vocabulary(self.type, AGENDA_ITEM_TYPES, "type")

        if self.order_num < 0:
            raise ValidationError(
                "Agenda item order_num must be non-negative",
                field="order_num",
                value=self.order_num
            )

    @classmethod
    def from_db_row(cls, row: sqlite3.Row) -> "AgendaItem":
        return cls(
            id=row["id"],
            meeting_id=row["meeting_id"],
            title=row["title"],
            order_num=row["order_num"],
            type=row["type"],
            reference_number=row["reference_number"],
            outcome=row["outcome"],
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization"""
        return asdict(self)


@dataclass
class Ordinance:
    """Ordinance entity - keyed by its canonical number

    Status only advances in rank (proposed < first_reading < second_reading
    < terminal) and a terminal status is never changed by reconciliation.
    disposition comes from the codification supplement history (codified/omit).
    """

    id: str
    number: str
    title: str
    status: str = "proposed"
    introduced_date: Optional[date] = None
    adopted_date: Optional[date] = None
    municode_url: Optional[str] = None
    summary: Optional[str] = None
    disposition: Optional[str] = None

    def __post_init__(self):
        """Validate ordinance data after initialization"""
        if not self.number or not self.number.strip():
            raise ValidationError("Ordinance must have a number", field="number", value=self.number)
        _check_vocabulary(self.status, ORDINANCE_STATUSES, "status")
        if self.disposition is not None:
            _check_vocabulary(self.disposition, DISPOSITIONS, "disposition")

    @classmethod
    def from_db_row(cls, row: sqlite3.Row) -> "Ordinance":
        return cls(
            id=row["id"],
            number=row["number"],
            title=row["title"],
            status=row["status"],
            introduced_date=parse_iso_date(row["introduced_date"]),
            adopted_date=parse_iso_date(row["adopted_date"]),
            municode_url=row["municode_url"],
            summary=row["summary"],
            disposition=row["disposition"],
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_ORDINANCE_STATUSES

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization"""
        data = asdict(self)
        data["introduced_date"] = format_iso_date(self.introduced_date)
        data["adopted_date"] = format_iso_date(self.adopted_date)
        return data


@dataclass
class OrdinanceMeetingLink:
    """Association between an ordinance and a meeting where it appeared

    At most one action per (ordinance, meeting). meeting_date is populated
    on reads that join meetings and is not stored on the link.
    """

    ordinance_id: str
    meeting_id: str
    action: str = "discussed"
    meeting_date: Optional[date] = None

    def __post_init__(self):
        _check_vocabulary(self.action, LINK_ACTIONS, "action")

    @classmethod
    def from_db_row(cls, row: sqlite3.Row) -> "OrdinanceMeetingLink":
        keys = row.keys()
        return cls(
            ordinance_id=row["ordinance_id"],
            meeting_id=row["meeting_id"],
            action=row["action"],
            meeting_date=parse_iso_date(row["meeting_date"]) if "meeting_date" in keys else None,
        )

    def to_dict(self) -> dict:
        data = asdict(self)
        data["meeting_date"] = format_iso_date(self.meeting_date)
        return data


@dataclass
class Resolution:
    """Resolution entity - keyed by its canonical number

    adopted_date is set only when status is adopted, and only on a verified
    path (explicit outcome text or an authoritative vote). outcome_verified is
    a one-way latch: once set, only the correction path writes the row.
    status_date is the meeting date of the agenda evidence behind status;
    older evidence never replaces newer.
    """

    id: str
    number: str
    title: str
    status: str = "pending_minutes"
    introduced_date: Optional[date] = None
    adopted_date: Optional[date] = None
    meeting_id: Optional[str] = None
    outcome_verified: bool = False
    packet_url: Optional[str] = None
    summary: Optional[str] = None
    status_date: Optional[date] = None

    def __post_init__(self):
        """Validate resolution data after initialization"""
        if not self.number or not self.number.strip():
            raise ValidationError("Resolution must have a number", field="number", value=self.number)
        _check_vocabulary(self.status, RESOLUTION_STATUSES, "status")

        if self.adopted_date is not None and self.status != "adopted":
            raise ValidationError(
                f"Resolution {self.number} has adopted_date but status {self.status}",
                field="adopted_date",
                value=self.adopted_date
            )

    @classmethod
    def from_db_row(cls, row: sqlite3.Row) -> "Resolution":
        return cls(
            id=row["id"],
            number=row["number"],
            title=row["title"],
            status=row["status"],
            introduced_date=parse_iso_date(row["introduced_date"]),
            adopted_date=parse_iso_date(row["adopted_date"]),
            meeting_id=row["meeting_id"],
            outcome_verified=bool(row["outcome_verified"]),
            packet_url=row["packet_url"],
            summary=row["summary"],
            status_date=parse_iso_date(row["status_date"]),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization"""
        data = asdict(self)
        data["introduced_date"] = format_iso_date(self.introduced_date)
        data["adopted_date"] = format_iso_date(self.adopted_date)
        data["status_date"] = format_iso_date(self.status_date)
        return data
