"""
Pipeline Models - Transient types and result objects for reconciliation stages

Nothing here is stored directly. Vote outcomes and codification entries are
validated with Pydantic at the collaborator boundary; invalid rows are
dropped by the caller, never trusted. Result objects aggregate per-item
successes, misses and isolated errors so every public operation returns
instead of raising.
"""

from dataclasses import asdict, field
from datetime import date
from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.dataclasses import dataclass

from database.models import Ordinance


MotionKind = Literal["approve", "deny", "table", "unknown"]
VoteResult = Literal["passed", "failed", "tabled"]
TokenKind = Literal["ordinance", "resolution"]
MatchKind = Literal["exact", "year_prefix", "substring"]

_MOTION_SYNONYMS = {
    "approve": "approve",
    "approved": "approve",
    "approval": "approve",
    "adopt": "approve",
    "accept": "approve",
    "deny": "deny",
    "denied": "deny",
    "denial": "deny",
    "reject": "deny",
    "table": "table",
    "tabled": "table",
    "postpone": "table",
}


class VoteOutcome(BaseModel):
    """Recorded vote on one agenda item

    Accepts both snake_case and the portal's camelCase keys.
    """
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    item_title: str = Field(validation_alias=AliasChoices("item_title", "itemTitle"))
    motion: MotionKind = "unknown"
    result: VoteResult
    yes_count: int = Field(default=0, ge=0, validation_alias=AliasChoices("yes_count", "yesCount"))
    no_count: int = Field(default=0, ge=0, validation_alias=AliasChoices("no_count", "noCount"))
    abstain_count: int = Field(
        default=0, ge=0, validation_alias=AliasChoices("abstain_count", "abstainCount")
    )
    initiated_by: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("initiated_by", "initiatedBy")
    )
    seconded_by: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("seconded_by", "secondedBy")
    )

    @field_validator("item_title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("item_title cannot be empty")
        return v.strip()

    @field_validator("motion", mode="before")
    @classmethod
    def normalize_motion(cls, v: Any) -> str:
        """Map free-text motion names onto approve/deny/table/unknown"""
        if v is None:
            return "unknown"
        return _MOTION_SYNONYMS.get(str(v).strip().lower(), "unknown")

    @field_validator("result", mode="before")
    @classmethod
    def normalize_result(cls, v: Any) -> str:
        if isinstance(v, str):
            return v.strip().lower()
        return v


class CodificationEntry(BaseModel):
    """One row of the codification supplement history"""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    ordinance_number: str = Field(
        validation_alias=AliasChoices("ordinance_number", "ordinanceNumber")
    )
    adopted_date: Optional[date] = Field(
        default=None, validation_alias=AliasChoices("adopted_date", "adoptedDate")
    )
    disposition: Literal["codified", "omit"]
    supplement_number: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("supplement_number", "supplementNumber")
    )

    @field_validator("ordinance_number")
    @classmethod
    def validate_number(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("ordinance_number cannot be empty")
        return v.strip()

    @field_validator("adopted_date", mode="before")
    @classmethod
    def blank_date(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("disposition", mode="before")
    @classmethod
    def normalize_disposition(cls, v: Any) -> str:
        """Supplement tables print Include/Omit"""
        text = str(v).strip().lower()
        if text in ("include", "included", "codified"):
            return "codified"
        return text


@dataclass
class ReferenceToken:
    """Typed reference parsed from an agenda item"""
    kind: TokenKind
    number: str


@dataclass
class OrdinanceRef:
    """A resolved ordinance reference with match provenance

    match_kind records which resolution step succeeded. Substring matches
    are accepted but flagged ambiguous.
    """
    ordinance: Ordinance
    match_kind: MatchKind
    raw_reference: str

    @property
    def is_ambiguous(self) -> bool:
        return self.match_kind == "substring"


@dataclass
class LinkResult:
    linked: int = 0
    not_found: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    ambiguous: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class DateMismatch:
    """Second linked meeting too far from a confirmed adoption date"""
    ordinance_number: str
    meeting_id: str
    meeting_date: date
    adopted_date: date
    days_apart: int

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["meeting_date"] = self.meeting_date.isoformat()
        data["adopted_date"] = self.adopted_date.isoformat()
        return data


@dataclass
class InferenceResult:
    updated: int = 0
    ordinances: List[str] = field(default_factory=list)
    date_mismatches: List[DateMismatch] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "updated": self.updated,
            "ordinances": list(self.ordinances),
            "date_mismatches": [m.to_dict() for m in self.date_mismatches],
            "errors": list(self.errors),
        }


@dataclass
class VoteReconcileResult:
    meeting_id: str
    resolutions_updated: int = 0
    ordinances_updated: int = 0
    links_updated: int = 0
    outcomes_found: int = 0
    invalid_outcomes: int = 0
    source: Literal["vote_source", "document", "none"] = "none"
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class VoteBackfillResult:
    meetings_processed: int = 0
    meetings_remaining: int = 0
    resolutions_updated: int = 0
    ordinances_updated: int = 0
    deadline_reached: bool = False
    errors: List[str] = field(default_factory=list)

    def add(self, result: VoteReconcileResult):
        self.meetings_processed += 1
        self.resolutions_updated += result.resolutions_updated
        self.ordinances_updated += result.ordinances_updated
        self.errors.extend(f"{result.meeting_id}: {e}" for e in result.errors)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CodificationSyncResult:
    created: int = 0
    updated: int = 0
    skipped: int = 0
    codified: int = 0
    omitted: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ResolutionText:
    """Full text of a resolution pulled from its agenda document"""
    number: str
    raw_text: str
