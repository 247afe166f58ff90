import enum
from datetime import datetime

from sqlalchemy import (
    Column, Integer, String, Boolean, Date, DateTime, Float, ForeignKey, Text, JSON,
    Enum, UniqueConstraint,
)
from sqlalchemy.orm import relationship
from .db import Base


class UserRole(str, enum.Enum):
    CUSTOMER = "customer"
    TECHNICIAN = "technician"
    ADMIN = "admin"


class BookingStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"  # reserved, no transition produces it yet


# Bookings in these states free their time slot.
INACTIVE_BOOKING_STATUSES = (BookingStatus.CANCELLED, BookingStatus.NO_SHOW)


class TransactionType(str, enum.Enum):
    EARNED = "EARNED"
    BONUS = "BONUS"
    REDEEMED = "REDEEMED"


def _enum_column(enum_cls, **kwargs):
    return Column(
        Enum(enum_cls, native_enum=False, length=20, values_callable=lambda e: [m.value for m in e]),
        **kwargs,
    )


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    password = Column(String(255), nullable=False)
    phone = Column(String(50))
    role = _enum_column(UserRole, nullable=False, default=UserRole.CUSTOMER)
    email_verified = Column(Boolean, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    technician = relationship("Technician", back_populates="user", uselist=False)
    bookings_as_customer = relationship("Booking", back_populates="customer")
    points = relationship("UserPoints", back_populates="user", uselist=False)
    achievements = relationship("UserAchievement", back_populates="user")


class Technician(Base):
    __tablename__ = "technicians"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    specializations = Column(JSON, default=list)
    location = Column(String(255))
    company_name = Column(String(255))
    verified = Column(Boolean, default=False)
    rating = Column(Float, default=0.0)
    total_jobs_completed = Column(Integer, default=0, nullable=False)
    total_reviews = Column(Integer, default=0, nullable=False)

    user = relationship("User", back_populates="technician")
    slots = relationship("AvailabilitySlot", back_populates="technician")
    time_offs = relationship("TimeOff", back_populates="technician")
    bookings = relationship("Booking", back_populates="technician")


class AvailabilitySlot(Base):
    """Weekly recurring window in which a technician accepts bookings."""
    __tablename__ = "availability_slots"
    id = Column(Integer, primary_key=True)
    technician_id = Column(Integer, ForeignKey("technicians.id"), index=True, nullable=False)
    day_of_week = Column(Integer, nullable=False)  # 0 = Sunday
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)
    is_available = Column(Boolean, default=True, nullable=False)
    is_recurring = Column(Boolean, default=True, nullable=False)

    technician = relationship("Technician", back_populates="slots")


class TimeOff(Base):
    __tablename__ = "time_offs"
    id = Column(Integer, primary_key=True)
    technician_id = Column(Integer, ForeignKey("technicians.id"), index=True, nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)  # inclusive
    reason = Column(String(500))

    technician = relationship("Technician", back_populates="time_offs")


class Booking(Base):
    __tablename__ = "bookings"
    # active_slot is NULL once a booking stops occupying its slot, so the
    # constraint only applies to live bookings.
    __table_args__ = (
        UniqueConstraint("technician_id", "active_slot", name="uq_booking_active_slot"),
    )

    id = Column(Integer, primary_key=True)
    customer_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    technician_id = Column(Integer, ForeignKey("technicians.id"), index=True, nullable=False)
    scheduled_date = Column(Date, nullable=False)
    scheduled_time = Column(String(5), nullable=False)
    active_slot = Column(String(20))
    service_type = Column(String(50), nullable=False)
    description = Column(Text)
    address = Column(String(500), nullable=False)
    city = Column(String(100), nullable=False)
    phone = Column(String(50), nullable=False)
    estimated_duration = Column(Integer, default=60, nullable=False)
    status = _enum_column(BookingStatus, nullable=False, default=BookingStatus.PENDING)
    total_price = Column(Float)
    cancelled_by = Column(String(20))
    cancel_reason = Column(String(500))
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    confirmed_at = Column(DateTime)
    completed_at = Column(DateTime)

    customer = relationship("User", back_populates="bookings_as_customer")
    technician = relationship("Technician", back_populates="bookings")
    review = relationship("Review", back_populates="booking", uselist=False)


class Review(Base):
    __tablename__ = "reviews"
    id = Column(Integer, primary_key=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), unique=True, nullable=False)
    author_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    technician_id = Column(Integer, ForeignKey("technicians.id"), index=True, nullable=False)
    rating = Column(Integer, nullable=False)
    comment = Column(Text)
    created_at = Column(DateTime, nullable=False, default=datetime.now)

    booking = relationship("Booking", back_populates="review")


class UserPoints(Base):
    """Cached projection of a user's point ledger."""
    __tablename__ = "user_points"
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    total_points = Column(Integer, default=0, nullable=False)
    lifetime_points = Column(Integer, default=0, nullable=False)
    current_level = Column(Integer, default=1, nullable=False)
    level_progress = Column(Integer, default=0, nullable=False)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    user = relationship("User", back_populates="points")


class PointTransaction(Base):
    """Append-only ledger row. Never updated or deleted."""
    __tablename__ = "point_transactions"
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    points = Column(Integer, nullable=False)
    type = _enum_column(TransactionType, nullable=False)
    source = Column(String(50), nullable=False)
    source_id = Column(Integer)
    description = Column(String(255))
    created_at = Column(DateTime, nullable=False, default=datetime.now, index=True)


class Level(Base):
    __tablename__ = "levels"
    id = Column(Integer, primary_key=True)
    level_number = Column(Integer, unique=True, nullable=False)
    name = Column(String(100), nullable=False)
    name_es = Column(String(100), nullable=False)
    min_points = Column(Integer, nullable=False)
    max_points = Column(Integer, nullable=False)
    perks = Column(JSON)


class Achievement(Base):
    __tablename__ = "achievements"
    id = Column(Integer, primary_key=True)
    code = Column(String(50), unique=True, nullable=False)
    name = Column(String(100), nullable=False)
    name_es = Column(String(100), nullable=False)
    description = Column(String(255))
    description_es = Column(String(255))
    category = Column(String(30))
    points_reward = Column(Integer, default=0, nullable=False)
    badge_color = Column(String(20))
    requirements = Column(JSON)
    sort_order = Column(Integer, default=0)
    is_active = Column(Boolean, default=True, nullable=False)


class UserAchievement(Base):
    __tablename__ = "user_achievements"
    __table_args__ = (
        UniqueConstraint("user_id", "achievement_id", name="uq_user_achievement"),
    )
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    achievement_id = Column(Integer, ForeignKey("achievements.id"), nullable=False)
    unlocked_at = Column(DateTime, nullable=False, default=datetime.now)

    user = relationship("User", back_populates="achievements")
    achievement = relationship("Achievement")


class Reward(Base):
    __tablename__ = "rewards"
    id = Column(Integer, primary_key=True)
    code = Column(String(50), unique=True, nullable=False)
    name = Column(String(100), nullable=False)
    name_es = Column(String(100), nullable=False)
    description = Column(String(255))
    description_es = Column(String(255))
    points_cost = Column(Integer, nullable=False)
    category = Column(String(30))
    value = Column(JSON)
    stock = Column(Integer)  # NULL = unlimited
    is_active = Column(Boolean, default=True, nullable=False)


class RewardRedemption(Base):
    __tablename__ = "reward_redemptions"
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    reward_id = Column(Integer, ForeignKey("rewards.id"), nullable=False)
    points_used = Column(Integer, nullable=False)
    code = Column(String(80), unique=True, nullable=False)
    status = Column(String(20), default="ACTIVE", nullable=False)
    redeemed_at = Column(DateTime, nullable=False, default=datetime.now)
    expires_at = Column(DateTime, nullable=False)

    reward = relationship("Reward")
