"""
Shared fixtures: a fresh SQLite store per test and seeding helpers.

All tests pin "today" so upcoming/past and the year fallback are stable.
"""

from datetime import date
from typing import List, Optional

import pytest

from database.db import UnifiedDatabase
from database.models import Ordinance, Resolution
from database.repositories.ordinances import generate_ordinance_id
from database.repositories.resolutions import generate_resolution_id
from database.transaction import transaction

TODAY = date(2025, 6, 1)


@pytest.fixture
def today() -> date:
    return TODAY


@pytest.fixture
def db(tmp_path):
    """Temporary database, closed after the test"""
    database = UnifiedDatabase(db_path=str(tmp_path / "civicledger.db"))
    yield database
    database.close()


class Seeder:
    """Writes fixture rows through the same paths production uses"""

    def __init__(self, db: UnifiedDatabase):
        self.db = db

    def meeting(
        self,
        meeting_id: str,
        meeting_date: str,
        items: Optional[List[dict]] = None,
        title: str = "City Council Regular Meeting",
        minutes_url: Optional[str] = None,
    ):
        stored, stats = self.db.ingest_meeting(
            {
                "meeting_id": meeting_id,
                "title": title,
                "date": meeting_date,
                "minutes_url": minutes_url,
            },
            items or [],
            today=TODAY,
        )
        assert stored is not None, stats
        return stored

    def ordinance(
        self,
        number: str,
        status: str = "proposed",
        adopted_date: Optional[date] = None,
        title: Optional[str] = None,
        introduced_date: Optional[date] = None,
    ) -> Ordinance:
        with transaction(self.db.conn):
            return self.db.ordinances.store_ordinance(
                Ordinance(
                    id=generate_ordinance_id(number),
                    number=number,
                    title=title or f"Ordinance {number} title",
                    status=status,
                    introduced_date=introduced_date,
                    adopted_date=adopted_date,
                )
            )

    def link(self, number: str, meeting_id: str, action: str = "discussed"):
        ordinance = self.db.ordinances.get_by_number(number)
        with transaction(self.db.conn):
            self.db.ordinances.upsert_link(ordinance.id, meeting_id, action)

    def resolution(
        self,
        number: str,
        meeting_id: Optional[str] = None,
        status: str = "pending_minutes",
        introduced_date: Optional[date] = None,
        adopted_date: Optional[date] = None,
        verified: bool = False,
    ) -> Resolution:
        with transaction(self.db.conn):
            self.db.resolutions.store_resolution(
                Resolution(
                    id=generate_resolution_id(number),
                    number=number,
                    title=f"Resolution {number} title",
                    status=status,
                    introduced_date=introduced_date,
                    adopted_date=adopted_date,
                    meeting_id=meeting_id,
                )
            )
            if verified:
                self.db.conn.execute(
                    "UPDATE resolutions SET outcome_verified = 1 WHERE number = ?", (number,)
                )
        return self.db.resolutions.get_by_number(number)


@pytest.fixture
def seed(db) -> Seeder:
    return Seeder(db)


def ordinance_item(item_id: str, title: str, reference_number: Optional[str] = None, order_num: int = 1) -> dict:
    return {
        "item_id": item_id,
        "title": title,
        "type": "ordinance",
        "reference_number": reference_number,
        "order_num": order_num,
    }


def resolution_item(
    item_id: str, number: str, title: Optional[str] = None, outcome: Optional[str] = None, order_num: int = 1
) -> dict:
    return {
        "item_id": item_id,
        "title": title or f"Consider Resolution {number} to approve the item",
        "type": "resolution",
        "reference_number": number,
        "outcome": outcome,
        "order_num": order_num,
    }


@pytest.fixture
def make_ordinance_item():
    return ordinance_item


@pytest.fixture
def make_resolution_item():
    return resolution_item
