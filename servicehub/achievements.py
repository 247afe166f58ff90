"""
Achievement evaluator.

Achievements unlock once per user. Requirements are a conjunction over the
keys present in the catalog entry; keys the evaluator does not know are
ignored, so an entry with no known keys unlocks on the first evaluation.
"""
from datetime import datetime
from typing import Optional, List

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import catalog
from .ledger import record_points
from .models import (
    User, Booking, BookingStatus, Review, Achievement, UserAchievement, TransactionType,
)
from .logging_config import get_logger, log_error

logger = get_logger("achievements")


def collect_user_stats(db: Session, user: User) -> dict:
    """Statistics the requirement predicates are evaluated against."""
    stats = {
        "bookings_completed": db.query(Booking).filter(
            Booking.customer_id == user.id,
            Booking.status == BookingStatus.COMPLETED,
        ).count(),
        "reviews_written": db.query(Review).filter(Review.author_id == user.id).count(),
        "jobs_completed": 0,
        "total_reviews": 0,
        "average_rating": 0.0,
        "five_star_reviews": 0,
        "is_technician": user.technician is not None,
        "is_verified": False,
        "registered_at": user.created_at,
    }

    technician = user.technician
    if technician is not None:
        # Cached aggregates on the profile, not recomputed from reviews
        stats["jobs_completed"] = technician.total_jobs_completed or 0
        stats["total_reviews"] = technician.total_reviews or 0
        stats["average_rating"] = technician.rating or 0.0
        stats["is_verified"] = bool(technician.verified)
        stats["five_star_reviews"] = db.query(Review).filter(
            Review.technician_id == technician.id,
            Review.rating == 5,
        ).count()

    return stats


def requirements_met(requirements: dict, stats: dict) -> bool:
    """Every known requirement key present must hold. Role is checked by the caller."""
    req = requirements or {}

    if req.get("bookings_completed") and stats["bookings_completed"] < req["bookings_completed"]:
        return False
    if req.get("jobs_completed") and stats["jobs_completed"] < req["jobs_completed"]:
        return False
    if req.get("reviews_written") and stats["reviews_written"] < req["reviews_written"]:
        return False
    if req.get("five_star_reviews") and stats["five_star_reviews"] < req["five_star_reviews"]:
        return False
    if req.get("average_rating") and (
        stats["average_rating"] < req["average_rating"]
        or stats["total_reviews"] < req.get("min_reviews", 0)
    ):
        return False
    if req.get("is_verified") and not (stats["is_technician"] and stats["is_verified"]):
        return False
    if req.get("registered_before"):
        deadline = datetime.fromisoformat(req["registered_before"])
        if stats["registered_at"] > deadline:
            return False
    return True


def check_and_unlock_achievements(
    db: Session,
    user_id: int,
    trigger_event: Optional[str] = None,
) -> List[dict]:
    """
    Unlock every catalog achievement the user now qualifies for.

    Each unlock is recorded once and, when the achievement carries a reward,
    credited to the ledger as a BONUS. Runs as one unit of work; if a
    concurrent evaluation already unlocked one of the same achievements the
    whole unit is rolled back and nothing is reported.

    Returns:
        The achievements unlocked by this call (empty if none)
    """
    user = db.get(User, user_id)
    if user is None:
        return []

    unlocked_codes = {
        code for (code,) in db.query(Achievement.code)
        .join(UserAchievement, UserAchievement.achievement_id == Achievement.id)
        .filter(UserAchievement.user_id == user_id)
        .all()
    }
    stats = collect_user_stats(db, user)

    try:
        newly_unlocked = _unlock_qualifying(db, user_id, stats, unlocked_codes)
        if newly_unlocked:
            db.commit()
    except IntegrityError as e:
        db.rollback()
        log_error("Concurrent achievement unlock", e, user_id=user_id, event=trigger_event or "")
        return []

    if newly_unlocked:
        logger.info(
            f"Unlocked {', '.join(a['code'] for a in newly_unlocked)}",
            extra={"user_id": user_id, "event": trigger_event or ""},
        )
    return newly_unlocked


def _unlock_qualifying(db: Session, user_id: int, stats: dict, unlocked_codes: set) -> List[dict]:
    newly_unlocked = []

    for achievement in catalog.ACHIEVEMENTS:
        if achievement["code"] in unlocked_codes:
            continue

        requirements = achievement["requirements"]
        if requirements.get("role") == "technician" and not stats["is_technician"]:
            continue

        if not requirements_met(requirements, stats):
            continue

        db_achievement = db.query(Achievement).filter(Achievement.code == achievement["code"]).first()
        if db_achievement is None:
            logger.warning(f"Achievement {achievement['code']} missing from catalog table")
            continue

        db.add(UserAchievement(user_id=user_id, achievement_id=db_achievement.id))

        if achievement["points_reward"] > 0:
            record_points(
                db,
                user_id,
                achievement["points_reward"],
                TransactionType.BONUS,
                catalog.ACHIEVEMENT_UNLOCKED_SOURCE,
                f"Logro desbloqueado: {achievement['name_es']}",
                db_achievement.id,
            )

        newly_unlocked.append({
            "code": achievement["code"],
            "name": achievement["name"],
            "name_es": achievement["name_es"],
            "description": achievement["description_es"],
            "points_reward": achievement["points_reward"],
            "badge_color": achievement["badge_color"],
        })

    db.flush()
    return newly_unlocked


def get_user_achievements(db: Session, user_id: int) -> List[dict]:
    """Active catalog achievements with the user's unlock state."""
    unlocked = {
        ua.achievement_id: ua.unlocked_at
        for ua in db.query(UserAchievement).filter(UserAchievement.user_id == user_id).all()
    }
    achievements = (
        db.query(Achievement)
        .filter(Achievement.is_active.is_(True))
        .order_by(Achievement.sort_order)
        .all()
    )
    return [
        {
            "id": achievement.id,
            "code": achievement.code,
            "name": achievement.name,
            "name_es": achievement.name_es,
            "description": achievement.description,
            "description_es": achievement.description_es,
            "category": achievement.category,
            "points_reward": achievement.points_reward,
            "badge_color": achievement.badge_color,
            "is_unlocked": achievement.id in unlocked,
            "unlocked_at": unlocked.get(achievement.id),
        }
        for achievement in achievements
    ]


def get_all_achievements(db: Session) -> List[Achievement]:
    return (
        db.query(Achievement)
        .filter(Achievement.is_active.is_(True))
        .order_by(Achievement.sort_order)
        .all()
    )
