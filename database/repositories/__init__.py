"""
Database Repositories

Focused repository classes for clean separation of concerns:
- MeetingRepository: Meeting storage, status refresh, vote backlog selection
- ItemRepository: Agenda item storage and candidate selection
- OrdinanceRepository: Ordinances and ordinance-meeting links
- ResolutionRepository: Resolutions, vote outcomes and corrections
"""

from database.repositories.base import BaseRepository
from database.repositories.meetings import MeetingRepository
from database.repositories.items import ItemRepository
from database.repositories.ordinances import OrdinanceRepository
from database.repositories.resolutions import ResolutionRepository

__all__ = [
    "BaseRepository",
    "MeetingRepository",
    "ItemRepository",
    "OrdinanceRepository",
    "ResolutionRepository",
]
