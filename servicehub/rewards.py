"""Reward catalog and redemption."""
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from . import catalog
from .calendar_utils import encode_timestamp, now_local
from .config import REDEMPTION_EXPIRY_DAYS
from .errors import RewardUnavailable, OutOfStock, InsufficientPoints
from .ledger import get_or_create_points, record_points, get_user_points_summary
from .models import Reward, RewardRedemption, TransactionType
from .logging_config import get_logger

logger = get_logger("rewards")

REDEMPTION_CODE_ATTEMPTS = 5


def get_available_rewards(db: Session) -> List[Reward]:
    return (
        db.query(Reward)
        .filter(Reward.is_active.is_(True), or_(Reward.stock.is_(None), Reward.stock > 0))
        .order_by(Reward.points_cost, Reward.id)
        .all()
    )


def get_affordable_rewards(db: Session, user_id: int) -> dict:
    summary = get_user_points_summary(db, user_id)
    rewards = [r for r in get_available_rewards(db) if r.points_cost <= summary["total_points"]]
    return {"user_points": summary["total_points"], "rewards": rewards}


def redeem_reward(db: Session, user_id: int, reward_code: str, now: Optional[datetime] = None) -> dict:
    """
    Exchange points for a reward.

    The balance check, stock decrement, redemption record and ledger debit
    commit together. Redemption codes are unique; when another redemption of
    the same reward already holds this millisecond, the code moves on to the
    next one.

    Raises:
        RewardUnavailable: unknown or inactive reward
        OutOfStock: finite stock exhausted
        InsufficientPoints: balance below the reward's cost

    Returns:
        dict with redemption, reward and redemption_code
    """
    now = now_local(now)
    for attempt in range(REDEMPTION_CODE_ATTEMPTS):
        code_time = now + timedelta(milliseconds=attempt)
        try:
            return _redeem_once(db, user_id, reward_code, now, code_time)
        except IntegrityError:
            if attempt == REDEMPTION_CODE_ATTEMPTS - 1:
                raise
            logger.warning(f"Redemption code for {reward_code} taken, retrying", extra={"user_id": user_id})


def _redeem_once(db: Session, user_id: int, reward_code: str, now: datetime, code_time: datetime) -> dict:
    try:
        reward = db.query(Reward).filter(Reward.code == reward_code).first()
        if reward is None or not reward.is_active:
            raise RewardUnavailable(f"Reward {reward_code} is not available")
        if reward.stock is not None and reward.stock <= 0:
            raise OutOfStock(f"Reward {reward_code} is out of stock")

        user_points = get_or_create_points(db, user_id)
        if user_points.total_points < reward.points_cost:
            raise InsufficientPoints(
                f"Reward {reward_code} costs {reward.points_cost} points, balance is {user_points.total_points}"
            )

        if reward.stock is not None:
            taken = db.query(Reward).filter(Reward.id == reward.id, Reward.stock > 0).update(
                {Reward.stock: Reward.stock - 1}, synchronize_session=False
            )
            if not taken:
                raise OutOfStock(f"Reward {reward_code} is out of stock")

        redemption_code = f"{reward_code}-{encode_timestamp(code_time)}"
        redemption = RewardRedemption(
            user_id=user_id,
            reward_id=reward.id,
            points_used=reward.points_cost,
            code=redemption_code,
            redeemed_at=now,
            expires_at=now + timedelta(days=REDEMPTION_EXPIRY_DAYS),
        )
        db.add(redemption)
        db.flush()

        # Direct ledger debit: redemptions never trigger achievement evaluation.
        record_points(
            db,
            user_id,
            -reward.points_cost,
            TransactionType.REDEEMED,
            catalog.REWARD_REDEEMED_SOURCE,
            f"Canjeaste: {reward.name_es}",
            redemption.id,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(reward)
    logger.info(f"Redeemed {reward_code} as {redemption_code}", extra={"user_id": user_id})
    return {"redemption": redemption, "reward": reward, "redemption_code": redemption_code}


def get_user_redemptions(db: Session, user_id: int) -> List[RewardRedemption]:
    return (
        db.query(RewardRedemption)
        .options(joinedload(RewardRedemption.reward))
        .filter(RewardRedemption.user_id == user_id)
        .order_by(RewardRedemption.redeemed_at.desc(), RewardRedemption.id.desc())
        .all()
    )
