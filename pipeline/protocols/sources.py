"""Source Protocols - Interfaces for the external collaborators of a run

Vote portal, minutes host and document extractor are injected into the
vote reconciler and resolution extractor. Each may raise
SourceUnavailableError; callers isolate that per meeting or per item.
Null implementations let a run proceed without a configured source.
"""

from typing import Any, Dict, List, Optional, Protocol, Sequence

from database.models import AgendaItem, Meeting


class VoteSource(Protocol):
    """Authoritative recorded votes for a meeting

    Returns raw rows (dicts) or VoteOutcome objects; the reconciler
    validates either form.
    """

    async def fetch_vote_outcomes(self, meeting: Meeting) -> List[Any]: ...


class MinutesSource(Protocol):
    """Minutes document bytes for a meeting, or None when not published"""

    async def fetch_minutes_document(self, meeting: Meeting) -> Optional[bytes]: ...


class DocumentExtractor(Protocol):
    """Structured data pulled out of meeting documents (AI-assisted)

    Output is untrusted and validated by the caller.
    """

    async def extract_outcomes_from_document(
        self, document: bytes, agenda_items: Sequence[AgendaItem]
    ) -> List[Any]: ...

    async def extract_resolution_text(self, document: bytes, number: str) -> Dict[str, Any]: ...


class NullVoteSource:
    """No vote portal configured"""

    async def fetch_vote_outcomes(self, meeting: Meeting) -> List[Any]:
        return []


class NullMinutesSource:
    """No minutes host configured"""

    async def fetch_minutes_document(self, meeting: Meeting) -> Optional[bytes]:
        return None


class NullDocumentExtractor:
    """No extractor configured - finds nothing"""

    async def extract_outcomes_from_document(
        self, document: bytes, agenda_items: Sequence[AgendaItem]
    ) -> List[Any]:
        return []

    async def extract_resolution_text(self, document: bytes, number: str) -> Dict[str, Any]:
        return {"found": False}
