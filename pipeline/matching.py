"""Pattern matchers - pure text rules for references, actions and outcomes

Every function here is side-effect free and works on a single string (or a
vote's motion/result pair). Orchestrators compose them; tests pin each one
against fixture tables.
"""

import re
from typing import List, Optional, Tuple

from pipeline.models import ReferenceToken

# En dash, em dash, figure dash, minus sign
DASH_VARIANTS = "‒–—−"
_DASH_TABLE = str.maketrans({ch: "-" for ch in DASH_VARIANTS})

# Tried in order, first hit wins. Year-form numbers are preferred over bare ones.
ORDINANCE_NUMBER_PATTERNS = [
    r"ordinance\s*(?:no\.?\s*)?#?\s*(\d{4}-\d+)",  # "Ordinance 2024-15", "Ordinance #2024-15"
    r"ordinance\s*(?:no\.?\s*)?#?\s*(\d+)",  # "Ordinance 724", "Ordinance No. 724"
    r"(\d{4}-\d+)",  # bare "2024-15" anywhere in the text
]

# "25-040", "Resolution 2024-112", "Resolution No. 25-040"
RESOLUTION_NUMBER_PATTERN = r"(?:resolution\s*)?(?:no\.?\s*)?#?\s*(\d{2,4}-\d{1,4})\b"

# Title keyword → link action. Order matters: "first reading" must win over "adopt"
ACTION_KEYWORDS: List[Tuple[Tuple[str, ...], str]] = [
    (("first reading",), "first_reading"),
    (("second reading",), "second_reading"),
    (("adopt", "adoption"), "adopted"),
    (("introduc",), "introduced"),
    (("amend",), "amended"),
    (("table",), "tabled"),
    (("deny", "denied"), "denied"),
    (("withdraw",), "withdrawn"),
]

# Agenda outcome text → resolution status
OUTCOME_KEYWORDS: List[Tuple[Tuple[str, ...], str]] = [
    (("approved", "adopted", "passed"), "adopted"),
    (("rejected", "denied"), "rejected"),
    (("tabled",), "tabled"),
]

# Substantive description after the ordinance number on an agenda title
ORDINANCE_TITLE_PATTERNS = [
    r"Ordinance\s+\d+(?:-\d+)?\s+to\s+(?:Consider\s+)?(.+)",
    r"(?:Consider|Approve)\s+Ordinance\s+\d+(?:-\d+)?[:\s-]+(.+)",
    r"Ordinance\s+\d+(?:-\d+)?\s*[-:]\s*(.+)",
]
ORDINANCE_TITLE_FALLBACK = r"Ordinance\s+\d+(?:-\d+)?\s+(.+)"


def normalize_dashes(text: str) -> str:
    """Replace en/em dash variants with a plain hyphen"""
    return text.translate(_DASH_TABLE)


def _capitalize(text: str) -> str:
    return text[:1].upper() + text[1:]


def has_year_prefix(number: str) -> bool:
    return re.match(r"^\d{4}-\d+$", number) is not None


def extract_ordinance_number(text: str) -> Optional[str]:
    """Canonical ordinance number mentioned in text, or None

    Examples:
        "Second Reading of Ordinance 2024–15" -> "2024-15"
        "Ordinance #724 to Consider a Variance" -> "724"
        "Rezoning per 2023-8" -> "2023-8"
    """
    if not text:
        return None
    normalized = normalize_dashes(text)
    for pattern in ORDINANCE_NUMBER_PATTERNS:
        match = re.search(pattern, normalized, re.IGNORECASE)
        if match:
            return match.group(1)
    return None


def canonical_ordinance_reference(reference_number: str) -> Optional[str]:
    """Canonical number from an agenda reference_number field

    Reference fields often carry the bare number ("724", "#2024-15"), which
    the text patterns would not accept without the word "ordinance".
    """
    if not reference_number:
        return None
    number = extract_ordinance_number(reference_number)
    if number:
        return number
    match = re.fullmatch(r"\s*(?:no\.?\s*)?#?\s*(\d+(?:-\d+)?)\s*", normalize_dashes(reference_number), re.IGNORECASE)
    return match.group(1) if match else None


def extract_resolution_number(text: str) -> Optional[str]:
    """Canonical resolution number (NN-NNN or YYYY-NNN) in text, or None"""
    if not text:
        return None
    match = re.search(RESOLUTION_NUMBER_PATTERN, normalize_dashes(text), re.IGNORECASE)
    return match.group(1) if match else None


def canonical_resolution_reference(reference_number: str) -> Optional[str]:
    """Canonical number from a resolution item's reference_number field"""
    if not reference_number or not reference_number.strip():
        return None
    return extract_resolution_number(reference_number) or normalize_dashes(reference_number).strip()


def parse_reference_tokens(
    title: str, reference_number: Optional[str], item_type: str
) -> List[ReferenceToken]:
    """Typed references carried by one agenda item

    Resolution items yield a resolution token from their reference number
    (or title). Ordinance items, and any item whose title mentions an
    ordinance, yield an ordinance token from the reference number, falling
    back to the title.
    """
    tokens: List[ReferenceToken] = []
    title = title or ""

    if item_type == "resolution":
        number = canonical_resolution_reference(reference_number or "") or extract_resolution_number(title)
        if number:
            tokens.append(ReferenceToken(kind="resolution", number=number))
        return tokens

    if item_type == "ordinance" or "ordinance" in title.lower():
        number = None
        if reference_number:
            number = canonical_ordinance_reference(reference_number)
        if not number:
            number = extract_ordinance_number(title)
        if number:
            tokens.append(ReferenceToken(kind="ordinance", number=number))

    return tokens


def detect_ordinance_action(title: str) -> str:
    """Link action implied by an agenda title, 'discussed' when nothing matches"""
    lower = (title or "").lower()
    for keywords, action in ACTION_KEYWORDS:
        if any(k in lower for k in keywords):
            return action
    return "discussed"


def classify_outcome_text(text: str) -> str:
    """Resolution status implied by an agenda item's outcome text"""
    lower = (text or "").lower()
    for keywords, status in OUTCOME_KEYWORDS:
        if any(k in lower for k in keywords):
            return status
    return "pending_minutes"


def clean_resolution_title(title: str) -> str:
    """Strip the "Consider Resolution NN-NNN to" lead-in from an agenda title"""
    cleaned = re.sub(r"^Consider\s+Resolution\s+[\d-]+\s*", "", normalize_dashes(title), flags=re.IGNORECASE)
    cleaned = re.sub(r"^to\s+", "", cleaned, flags=re.IGNORECASE).strip()
    return _capitalize(cleaned) if cleaned else title


def extract_ordinance_title(agenda_title: str, number: Optional[str] = None) -> str:
    """Ordinance title from agenda wording

    "Public Hearing and Second Reading of Ordinance 724 to Consider a
    Variance Request at 4627 Atlanta Highway" -> "A Variance Request at 4627
    Atlanta Highway". Falls back to "Ordinance {number}" when the agenda
    title is empty.
    """
    if not agenda_title or not agenda_title.strip():
        return f"Ordinance {number}" if number else ""

    agenda_title = normalize_dashes(agenda_title)
    for pattern in ORDINANCE_TITLE_PATTERNS:
        match = re.search(pattern, agenda_title, re.IGNORECASE)
        if match and match.group(1).strip():
            title = re.sub(r"[.;,]$", "", match.group(1).strip())
            return _capitalize(title)

    match = re.search(ORDINANCE_TITLE_FALLBACK, agenda_title, re.IGNORECASE)
    if match and match.group(1).strip():
        return match.group(1).strip()

    return agenda_title.strip()


def detect_status_from_agenda(title: str) -> str:
    """Initial ordinance status for an ordinance first seen on an agenda"""
    lower = (title or "").lower()
    if "second reading" in lower or "adopt" in lower:
        return "adopted"
    return "proposed"


def mentions_second_reading(title: str) -> bool:
    return "second reading" in (title or "").lower()


def resolution_status_for_vote(motion: str, result: str) -> str:
    """Resolution status recorded for an authoritative vote"""
    if motion == "table" and result == "passed":
        return "tabled"
    if motion == "deny" and result == "passed":
        return "rejected"
    if result == "passed":
        return "adopted"
    if result == "failed":
        return "rejected"
    return "tabled"


def ordinance_outcome_for_vote(
    motion: str, result: str, item_title: str
) -> Tuple[str, Optional[str]]:
    """(link action, ordinance status or None) for an authoritative vote

    Only denials, second-reading approvals and tablings change the
    ordinance's status; other outcomes are recorded on the link alone.
    """
    if motion == "deny" and result == "passed":
        return "denied", "denied"
    if motion == "approve" and result == "passed":
        if mentions_second_reading(item_title):
            return "adopted", "adopted"
        return "first_reading_passed", None
    if result == "failed":
        return "failed", None
    if result == "tabled":
        return "tabled", "tabled"
    return "voted", None


def mentions_resolution(text: str, number: str) -> Tuple[bool, bool]:
    """(explicit, bare) mention of a resolution number in vote text

    explicit: "Resolution 25-040" / "Resolution No. 25-040"
    bare: the number appears anywhere
    """
    normalized = normalize_dashes(text or "")
    explicit = re.search(
        rf"resolution\s*(?:no\.?\s*)?#?\s*{re.escape(number)}(?!\d)",
        normalized,
        re.IGNORECASE,
    )
    return explicit is not None, number in normalized


def ordinance_number_matches(candidate: str, extracted: str) -> bool:
    """Does a stored ordinance number match a number read from vote text?

    Exact match, or a year-form number whose sequence part equals the
    extracted number ("2024-15" for "15", "2024-015" for "15").
    """
    if candidate == extracted:
        return True
    if not has_year_prefix(candidate) or "-" in extracted:
        return False
    sequence = candidate.split("-", 1)[1]
    return sequence == extracted or sequence.lstrip("0") == extracted.lstrip("0")
