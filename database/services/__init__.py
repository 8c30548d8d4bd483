"""Database Services - multi-repository write paths (meeting ingestion)"""

from database.services.meeting_ingestion import MeetingIngestionService

__all__ = ['MeetingIngestionService']
