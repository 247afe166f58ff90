"""Points, achievements, leaderboard and reward API routes."""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .config import LEADERBOARD_DEFAULT_LIMIT, POINTS_HISTORY_DEFAULT_LIMIT
from .db import get_db
from . import achievements, leaderboard, ledger, rewards

router = APIRouter()


def _transaction(tx) -> dict:
    return {
        "id": tx.id,
        "points": tx.points,
        "type": tx.type.value,
        "source": tx.source,
        "source_id": tx.source_id,
        "description": tx.description,
        "created_at": tx.created_at,
    }


def _reward(reward) -> dict:
    return {
        "id": reward.id,
        "code": reward.code,
        "name": reward.name,
        "name_es": reward.name_es,
        "description": reward.description,
        "description_es": reward.description_es,
        "points_cost": reward.points_cost,
        "category": reward.category,
        "value": reward.value,
        "stock": reward.stock,
    }


def _redemption(redemption) -> dict:
    return {
        "id": redemption.id,
        "code": redemption.code,
        "status": redemption.status,
        "points_used": redemption.points_used,
        "redeemed_at": redemption.redeemed_at,
        "expires_at": redemption.expires_at,
        "reward": _reward(redemption.reward),
    }


@router.post("/users/{user_id}/init")
def init_points(user_id: int, db: Session = Depends(get_db)):
    ledger.initialize_user_points(db, user_id)
    return ledger.get_user_points_summary(db, user_id)


@router.get("/users/{user_id}/points")
def points_summary(user_id: int, db: Session = Depends(get_db)):
    return ledger.get_user_points_summary(db, user_id)


@router.get("/users/{user_id}/history")
def points_history(
    user_id: int,
    limit: int = Query(default=POINTS_HISTORY_DEFAULT_LIMIT, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    history = ledger.get_points_history(db, user_id, limit, offset)
    history["transactions"] = [_transaction(tx) for tx in history["transactions"]]
    return history


@router.get("/achievements")
def achievement_catalog(db: Session = Depends(get_db)):
    return [
        {
            "id": a.id,
            "code": a.code,
            "name": a.name,
            "name_es": a.name_es,
            "description": a.description,
            "description_es": a.description_es,
            "category": a.category,
            "points_reward": a.points_reward,
            "badge_color": a.badge_color,
        }
        for a in achievements.get_all_achievements(db)
    ]


@router.get("/users/{user_id}/achievements")
def user_achievements(user_id: int, db: Session = Depends(get_db)):
    return achievements.get_user_achievements(db, user_id)


@router.post("/users/{user_id}/achievements/check")
def check_achievements(user_id: int, db: Session = Depends(get_db)):
    return {"unlocked": achievements.check_and_unlock_achievements(db, user_id)}


@router.get("/levels")
def levels(db: Session = Depends(get_db)):
    return [
        {
            "level_number": level.level_number,
            "name": level.name,
            "name_es": level.name_es,
            "min_points": level.min_points,
            "max_points": level.max_points,
            "perks": level.perks,
        }
        for level in ledger.get_all_levels(db)
    ]


@router.get("/leaderboard")
def get_leaderboard(
    period: str = "ALL_TIME",
    limit: int = Query(default=LEADERBOARD_DEFAULT_LIMIT, ge=1, le=100),
    db: Session = Depends(get_db),
):
    return {"period": period, "entries": leaderboard.get_leaderboard(db, period, limit)}


@router.get("/rewards")
def available_rewards(db: Session = Depends(get_db)):
    return [_reward(r) for r in rewards.get_available_rewards(db)]


@router.get("/users/{user_id}/rewards/affordable")
def affordable_rewards(user_id: int, db: Session = Depends(get_db)):
    result = rewards.get_affordable_rewards(db, user_id)
    return {"user_points": result["user_points"], "rewards": [_reward(r) for r in result["rewards"]]}


@router.post("/users/{user_id}/rewards/{reward_code}/redeem", status_code=201)
def redeem(user_id: int, reward_code: str, db: Session = Depends(get_db)):
    result = rewards.redeem_reward(db, user_id, reward_code)
    return {
        "redemption_code": result["redemption_code"],
        "redemption": _redemption(result["redemption"]),
        "reward": _reward(result["reward"]),
    }


@router.get("/users/{user_id}/redemptions")
def redemptions(user_id: int, db: Session = Depends(get_db)):
    return [_redemption(r) for r in rewards.get_user_redemptions(db, user_id)]
