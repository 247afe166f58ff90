"""
Leaderboards.

ALL_TIME ranks by lifetime points. WEEKLY (since Sunday 00:00) and MONTHLY
(since the 1st) rank by points earned in the period, summing positive ledger
rows only so redemptions do not lower a period score.
"""
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from .calendar_utils import week_start, month_start
from .models import PointTransaction, User, UserPoints

PERIODS = ("WEEKLY", "MONTHLY", "ALL_TIME")


def period_start(period: str, now: Optional[datetime] = None) -> Optional[datetime]:
    if period == "WEEKLY":
        return week_start(now)
    if period == "MONTHLY":
        return month_start(now)
    if period == "ALL_TIME":
        return None
    raise ValueError(f"period must be one of {', '.join(PERIODS)}")


def _entry(rank: int, user: Optional[User], user_id: int, points: int, level: int) -> dict:
    technician = user.technician if user is not None else None
    return {
        "rank": rank,
        "user_id": user_id,
        "user_name": user.name if user is not None else "Usuario",
        "points": points,
        "level": level,
        "jobs_completed": technician.total_jobs_completed if technician else 0,
        "average_rating": technician.rating if technician else 0,
        "role": user.role.value if user is not None else "customer",
    }


def get_leaderboard(db: Session, period: str = "ALL_TIME", limit: int = 10,
                    now: Optional[datetime] = None) -> List[dict]:
    start = period_start(period, now)

    if start is None:
        rows = (
            db.query(UserPoints)
            .options(joinedload(UserPoints.user).joinedload(User.technician))
            .order_by(UserPoints.lifetime_points.desc(), UserPoints.id)
            .limit(limit)
            .all()
        )
        return [
            _entry(index + 1, row.user, row.user_id, row.lifetime_points, row.current_level)
            for index, row in enumerate(rows)
        ]

    earned = func.sum(PointTransaction.points).label("earned")
    totals = (
        db.query(PointTransaction.user_id, earned)
        .filter(PointTransaction.created_at >= start, PointTransaction.points > 0)
        .group_by(PointTransaction.user_id)
        .order_by(earned.desc(), PointTransaction.user_id)
        .limit(limit)
        .all()
    )

    user_ids = [user_id for user_id, _ in totals]
    users = {
        user.id: user
        for user in db.query(User)
        .options(joinedload(User.points), joinedload(User.technician))
        .filter(User.id.in_(user_ids))
        .all()
    }

    board = []
    for index, (user_id, points) in enumerate(totals):
        user = users.get(user_id)
        level = user.points.current_level if user is not None and user.points is not None else 1
        board.append(_entry(index + 1, user, user_id, int(points or 0), level))
    return board
