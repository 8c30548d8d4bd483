"""Date Rollup - Ordinance adoption dates from linked meetings

Runs after action inference and vote reconciliation: an ordinance's
adopted_date becomes the latest meeting date among its links recorded as
'adopted' or 'second_reading'. Rows already holding that date are left
alone, so a repeat run reports 0.
"""

from config import get_logger
from database.transaction import transaction

logger = get_logger(__name__).bind(component="date_rollup")


def update_ordinance_dates_from_meetings(db) -> int:
    """Recompute adopted_date from adopting meetings

    Args:
        db: UnifiedDatabase instance

    Returns:
        Number of ordinances whose adopted_date changed
    """
    with transaction(db.conn):
        changed = db.ordinances.rollup_adopted_dates()

    logger.info("ordinance dates rolled up", changed=changed)
    return changed
