"""Event entry point of the gamification layer."""
from typing import Optional

from sqlalchemy.orm import Session

from . import catalog
from .achievements import check_and_unlock_achievements
from .ledger import award_points
from .models import TransactionType
from .logging_config import get_logger

logger = get_logger("gamification")


def award_points_for_event(
    db: Session,
    user_id: int,
    event_type: str,
    source_id: Optional[int] = None,
) -> Optional[dict]:
    """
    Credit the fixed points of an event, then re-evaluate achievements.

    Unknown event types are ignored and return None.

    Returns:
        The award result from award_points, with the achievements unlocked
        by this event under "achievements_unlocked"
    """
    described = catalog.describe_event(event_type)
    if described is None:
        logger.debug(f"Ignoring unknown event {event_type}", extra={"user_id": user_id})
        return None

    points, description = described
    result = award_points(
        db, user_id, points, TransactionType.EARNED, event_type, description, source_id
    )
    result["achievements_unlocked"] = check_and_unlock_achievements(
        db, user_id, trigger_event=event_type
    )
    return result
