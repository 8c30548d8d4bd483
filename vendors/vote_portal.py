"""Meeting portal clients - recorded votes and minutes documents over HTTP

PortalVoteSource reads the portal's per-event vote listing as JSON.
HttpMinutesSource downloads the minutes document a meeting points at.
Transport failures raise SourceHTTPError and unreadable payloads raise
SourceParsingError; the vote reconciler isolates both per meeting.
"""

import asyncio
import re
import time
from typing import Any, Dict, List, Optional

import aiohttp
from pydantic import ValidationError

from config import get_logger
from database.models import Meeting
from exceptions import SourceHTTPError, SourceParsingError
from vendors.schemas import validate_portal_votes
from vendors.session_manager_async import AsyncSessionManager

logger = get_logger(__name__).bind(component="source")


def event_id_from_meeting(meeting_id: str) -> Optional[str]:
    """Portal event id embedded in a meeting id ("civicclerk-412" -> "412")"""
    match = re.search(r"(\d+)$", meeting_id or "")
    return match.group(1) if match else None


class _HttpSource:
    """Shared request handling for portal-backed sources"""

    source = "http"

    def __init__(self, timeout: int = 30):
        self.timeout = timeout

    async def _get_session(self) -> aiohttp.ClientSession:
        return await AsyncSessionManager.get_session(self.source, timeout_total=self.timeout)

    async def _request(
        self, method: str, url: str, meeting_id: Optional[str] = None, **kwargs
    ) -> aiohttp.ClientResponse:
        """Make async HTTP request with error handling. Raises SourceHTTPError on failure."""
        session = await self._get_session()

        if "timeout" not in kwargs:
            kwargs["timeout"] = aiohttp.ClientTimeout(total=self.timeout)

        start_time = time.time()

        try:
            logger.debug("source request", source=self.source, method=method, url=url[:100])
            response = await session.request(method, url, **kwargs)
            duration = time.time() - start_time

            logger.debug(
                "source response",
                source=self.source,
                status_code=response.status,
                content_type=response.headers.get('content-type', 'unknown'),
                duration_seconds=round(duration, 2)
            )

            if response.status >= 400:
                error_body = await response.text()
                logger.error(
                    "source http error",
                    source=self.source,
                    status_code=response.status,
                    url=url[:100],
                    error_body=error_body[:500] if error_body else None,
                    duration_seconds=round(duration, 2)
                )
                raise SourceHTTPError(
                    f"HTTP {response.status} error",
                    source=self.source,
                    status_code=response.status,
                    url=url,
                    meeting_id=meeting_id,
                )

            return response

        except asyncio.TimeoutError as e:
            duration = time.time() - start_time
            logger.error("source request timeout", source=self.source, url=url[:100], duration_seconds=round(duration, 2))
            raise SourceHTTPError(
                f"Request timeout after {duration:.1f}s", source=self.source, url=url, meeting_id=meeting_id
            ) from e

        except aiohttp.ClientError as e:
            duration = time.time() - start_time
            logger.error(
                "source request failed",
                source=self.source,
                url=url[:100],
                error=str(e),
                error_type=type(e).__name__,
                duration_seconds=round(duration, 2)
            )
            raise SourceHTTPError(
                f"Request failed: {e}", source=self.source, url=url, meeting_id=meeting_id
            ) from e

    async def _get_json(self, url: str, meeting_id: Optional[str] = None) -> Any:
        """GET request, parse JSON. Raises SourceParsingError on a non-JSON body."""
        response = await self._request("GET", url, meeting_id=meeting_id)
        try:
            return await response.json()
        except aiohttp.ContentTypeError as e:
            text = await response.text()
            logger.error(
                "source json parse failed",
                source=self.source,
                url=url[:100],
                content_type=response.headers.get('content-type', 'unknown'),
                body_preview=text[:200] if text else None
            )
            raise SourceParsingError(
                f"Expected JSON but got {response.headers.get('content-type', 'unknown')}",
                source=self.source,
                meeting_id=meeting_id,
                original_error=e,
            ) from e
        except ValueError as e:
            logger.error("source json parse failed", source=self.source, url=url[:100], error=str(e))
            raise SourceParsingError(
                f"JSON parse failed: {e}", source=self.source, meeting_id=meeting_id, original_error=e
            ) from e


class PortalVoteSource(_HttpSource):
    """Recorded votes from the meeting portal's event vote listing

    GET {base_url}/event/{event_id}/votes returns either a bare list of vote
    rows or an object with a "votes" list. Rows are returned raw; the
    reconciler validates each one into a VoteOutcome.
    """

    source = "vote_portal"

    def __init__(self, base_url: str, timeout: int = 30):
        if not base_url:
            raise ValueError("base_url required for PortalVoteSource")
        super().__init__(timeout=timeout)
        self.base_url = base_url.rstrip("/")

        logger.info("initialized vote portal source", base_url=self.base_url)

    def votes_url(self, event_id: str) -> str:
        return f"{self.base_url}/event/{event_id}/votes"

    async def fetch_vote_outcomes(self, meeting: Meeting) -> List[Dict[str, Any]]:
        """Vote rows for one meeting; [] when the portal has none

        Raises:
            SourceHTTPError: Request failed or timed out
            SourceParsingError: Body was not a vote listing
        """
        event_id = event_id_from_meeting(meeting.id)
        if not event_id:
            logger.warning("meeting id carries no portal event id", meeting_id=meeting.id)
            return []

        payload = await self._get_json(self.votes_url(event_id), meeting_id=meeting.id)

        try:
            votes = validate_portal_votes(payload)
        except ValidationError as e:
            raise SourceParsingError(
                "Unexpected vote listing shape",
                source=self.source,
                meeting_id=meeting.id,
                original_error=e,
            ) from e

        logger.info(
            "fetched portal votes",
            meeting_id=meeting.id,
            event_id=event_id,
            vote_count=len(votes.votes)
        )
        return votes.votes


class HttpMinutesSource(_HttpSource):
    """Minutes document bytes from the meeting's minutes_url"""

    source = "minutes"

    async def fetch_minutes_document(self, meeting: Meeting) -> Optional[bytes]:
        """Document bytes, or None when the meeting has no minutes yet

        Raises:
            SourceHTTPError: Request failed or timed out
        """
        if not meeting.minutes_url:
            return None

        response = await self._request("GET", meeting.minutes_url, meeting_id=meeting.id)
        try:
            body = await response.read()
        except aiohttp.ClientError as e:
            raise SourceHTTPError(
                f"Failed to read minutes body: {e}",
                source=self.source,
                url=meeting.minutes_url,
                meeting_id=meeting.id,
            ) from e

        logger.info("fetched minutes document", meeting_id=meeting.id, size_bytes=len(body))
        return body or None
