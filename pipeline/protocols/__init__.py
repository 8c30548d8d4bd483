"""Pipeline Protocols - Type interfaces for dependency injection"""

from pipeline.protocols.sources import (
    DocumentExtractor,
    MinutesSource,
    NullDocumentExtractor,
    NullMinutesSource,
    NullVoteSource,
    VoteSource,
)

__all__ = [
    "DocumentExtractor",
    "MinutesSource",
    "NullDocumentExtractor",
    "NullMinutesSource",
    "NullVoteSource",
    "VoteSource",
]
