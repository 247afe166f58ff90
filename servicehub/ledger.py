"""
Points ledger and leveling.

PointTransaction rows are the source of truth. UserPoints is a cached
projection of them:

    total_points    = sum(points)
    lifetime_points = sum(points where points > 0)
    current_level   = highest level reached so far (never lowered)
    level_progress  = percent through the band of total_points

record_points() is the building block used inside larger units of work; it
flushes but does not commit. award_points() is the public, committing entry.
"""
from typing import Optional

from sqlalchemy import func, case
from sqlalchemy.orm import Session

from . import catalog
from .models import UserPoints, PointTransaction, TransactionType, Level
from .logging_config import get_logger, log_points_awarded

logger = get_logger("ledger")


def _locked_points_row(db: Session, user_id: int) -> Optional[UserPoints]:
    return (
        db.query(UserPoints)
        .filter(UserPoints.user_id == user_id)
        .with_for_update()
        .first()
    )


def get_or_create_points(db: Session, user_id: int) -> UserPoints:
    """Return the user's projection row, creating an all-zero one if missing."""
    user_points = _locked_points_row(db, user_id)
    if user_points is None:
        user_points = UserPoints(
            user_id=user_id,
            total_points=0,
            lifetime_points=0,
            current_level=1,
            level_progress=0,
        )
        db.add(user_points)
        db.flush()
        logger.debug("Initialized points", extra={"user_id": user_id})
    return user_points


def initialize_user_points(db: Session, user_id: int) -> UserPoints:
    user_points = get_or_create_points(db, user_id)
    db.commit()
    return user_points


def record_points(
    db: Session,
    user_id: int,
    points: int,
    type: TransactionType,
    source: str,
    description: str,
    source_id: Optional[int] = None,
) -> dict:
    """
    Append a ledger row and update the projection. Does not commit.

    Args:
        db: Session of the enclosing unit of work
        user_id: User whose balance changes
        points: Signed delta (negative for redemptions)
        type: EARNED, BONUS or REDEEMED
        source: Event code or ACHIEVEMENT_UNLOCKED / REWARD_REDEEMED
        description: Human-readable ledger text
        source_id: Booking, achievement or redemption id, if any

    Returns:
        dict with points_awarded, new_total, level_up and, on level up,
        new_level and new_level_name
    """
    user_points = get_or_create_points(db, user_id)

    db.add(PointTransaction(
        user_id=user_id,
        points=points,
        type=type,
        source=source,
        source_id=source_id,
        description=description,
    ))

    # Increment in SQL so concurrent writers never overwrite each other.
    db.query(UserPoints).filter(UserPoints.user_id == user_id).update(
        {
            UserPoints.total_points: UserPoints.total_points + points,
            UserPoints.lifetime_points: UserPoints.lifetime_points + max(points, 0),
        },
        synchronize_session=False,
    )
    db.flush()
    db.refresh(user_points)

    new_total = user_points.total_points
    level = catalog.calculate_level(new_total)
    user_points.level_progress = catalog.get_level_progress(new_total)

    result = {
        "points_awarded": points,
        "new_total": new_total,
        "level_up": False,
    }

    if level["level_number"] > user_points.current_level:
        user_points.current_level = level["level_number"]
        result.update({
            "level_up": True,
            "new_level": level["level_number"],
            "new_level_name": level["name_es"],
        })
        logger.info(
            f"Level up to {level['level_number']} ({level['name']})",
            extra={"user_id": user_id, "event": source},
        )

    db.flush()
    log_points_awarded(user_id, points, source, new_total)
    return result


def award_points(
    db: Session,
    user_id: int,
    points: int,
    type: TransactionType,
    source: str,
    description: str,
    source_id: Optional[int] = None,
) -> dict:
    """Record a ledger movement as its own unit of work."""
    try:
        result = record_points(db, user_id, points, type, source, description, source_id)
        db.commit()
    except Exception:
        db.rollback()
        raise
    return result


def get_user_points_summary(db: Session, user_id: int) -> dict:
    user_points = initialize_user_points(db, user_id)
    total = user_points.total_points

    current_level = catalog.calculate_level(total)
    next_level = catalog.get_next_level(total)

    return {
        "total_points": total,
        "lifetime_points": user_points.lifetime_points,
        "current_level": current_level["level_number"],
        "level_name": current_level["name"],
        "level_name_es": current_level["name_es"],
        "level_progress": catalog.get_level_progress(total),
        "points_to_next_level": catalog.points_to_next_level(total),
        "next_level_name": next_level["name"] if next_level else None,
        "next_level_name_es": next_level["name_es"] if next_level else None,
    }


def get_points_history(db: Session, user_id: int, limit: int = 20, offset: int = 0) -> dict:
    query = db.query(PointTransaction).filter(PointTransaction.user_id == user_id)
    total = query.count()
    transactions = (
        query.order_by(PointTransaction.created_at.desc(), PointTransaction.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return {
        "transactions": transactions,
        "total": total,
        "has_more": offset + limit < total,
    }


def ledger_totals(db: Session, user_id: int) -> tuple:
    """(sum of all deltas, sum of positive deltas) straight from the ledger."""
    total, lifetime = db.query(
        func.coalesce(func.sum(PointTransaction.points), 0),
        func.coalesce(
            func.sum(case((PointTransaction.points > 0, PointTransaction.points), else_=0)), 0
        ),
    ).filter(PointTransaction.user_id == user_id).one()
    return int(total), int(lifetime)


def ledger_is_consistent(db: Session, user_id: int) -> bool:
    user_points = db.query(UserPoints).filter(UserPoints.user_id == user_id).first()
    total, lifetime = ledger_totals(db, user_id)
    if user_points is None:
        return total == 0 and lifetime == 0
    return user_points.total_points == total and user_points.lifetime_points == lifetime


def recalculate_user_points(db: Session, user_id: int) -> UserPoints:
    """Rebuild the projection from the ledger and commit it."""
    user_points = get_or_create_points(db, user_id)
    total, lifetime = ledger_totals(db, user_id)

    if user_points.total_points != total or user_points.lifetime_points != lifetime:
        logger.warning(
            f"Projection drift: stored {user_points.total_points}/{user_points.lifetime_points}, "
            f"ledger {total}/{lifetime}",
            extra={"user_id": user_id},
        )

    user_points.total_points = total
    user_points.lifetime_points = lifetime
    user_points.current_level = max(
        user_points.current_level, catalog.calculate_level(total)["level_number"]
    )
    user_points.level_progress = catalog.get_level_progress(total)
    db.commit()
    return user_points


def get_all_levels(db: Session):
    return db.query(Level).order_by(Level.level_number).all()
