"""
Async Session Manager for external sources

One shared aiohttp session per source (vote portal, minutes host), created
lazily and reused across every meeting of a run. The conductor closes them
all when the run ends.
"""

import asyncio
from typing import Dict

import aiohttp

from config import get_logger

logger = get_logger(__name__).bind(component="source")


class AsyncSessionManager:
    """
    Manages aiohttp client sessions for external sources.

    A session belongs to the event loop that created it. Each CLI command
    runs its own loop, so a session left over from an earlier loop is
    replaced rather than reused.
    """

    _sessions: Dict[str, aiohttp.ClientSession] = {}
    _loops: Dict[str, asyncio.AbstractEventLoop] = {}

    @classmethod
    async def get_session(cls, source: str, timeout_total: int = 30) -> aiohttp.ClientSession:
        """Shared session for a source ("vote_portal", "minutes")"""
        loop = asyncio.get_running_loop()
        session = cls._sessions.get(source)

        if session is None or session.closed or cls._loops.get(source) is not loop:
            timeout = aiohttp.ClientTimeout(
                total=timeout_total,
                connect=10,
                sock_read=timeout_total
            )

            connector = aiohttp.TCPConnector(
                limit=10,
                limit_per_host=5,
                ttl_dns_cache=300,
            )

            headers = {
                "User-Agent": "civicledger/1.0 (+civic record reconciliation)",
                "Accept": "application/json, */*;q=0.8",
            }

            session = aiohttp.ClientSession(
                timeout=timeout,
                connector=connector,
                headers=headers,
                raise_for_status=False  # status mapped to SourceHTTPError by the caller
            )
            cls._sessions[source] = session
            cls._loops[source] = loop

            logger.debug("created async session", source=source, timeout_seconds=timeout_total)

        return session

    @classmethod
    async def close_all(cls):
        """Close every session opened in the running loop"""
        if not cls._sessions:
            return

        logger.info("closing async sessions", session_count=len(cls._sessions))

        loop = asyncio.get_running_loop()
        for source, session in cls._sessions.items():
            if not session.closed and cls._loops.get(source) is loop:
                await session.close()
                logger.debug("closed async session", source=source)

        cls._sessions.clear()
        cls._loops.clear()
