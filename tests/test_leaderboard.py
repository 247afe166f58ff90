"""Tests for servicehub.leaderboard."""
from datetime import datetime

import pytest

from servicehub.leaderboard import get_leaderboard, period_start
from servicehub.ledger import award_points
from servicehub.models import PointTransaction, Technician, TransactionType

NOW = datetime(2025, 6, 18, 12, 0)  # Wednesday


def earn(db, user_id, points):
    award_points(db, user_id, points, TransactionType.EARNED, "BOOKING_COMPLETED", "Prueba")


def ledger_row(db, user_id, points, created_at):
    db.add(PointTransaction(
        user_id=user_id,
        points=points,
        type=TransactionType.EARNED if points > 0 else TransactionType.REDEEMED,
        source="TEST",
        created_at=created_at,
    ))
    db.commit()


class TestPeriodStart:
    def test_periods(self):
        assert period_start("WEEKLY", NOW) == datetime(2025, 6, 15)
        assert period_start("MONTHLY", NOW) == datetime(2025, 6, 1)
        assert period_start("ALL_TIME", NOW) is None

    def test_unknown_period(self):
        with pytest.raises(ValueError):
            period_start("DAILY", NOW)


class TestAllTime:
    def test_ranked_by_lifetime_points(self, db, make_user):
        first, second, third = make_user(), make_user(), make_user()
        earn(db, second.id, 300)
        earn(db, first.id, 900)
        award_points(db, first.id, -800, TransactionType.REDEEMED, "REWARD_REDEEMED", "Canje")
        earn(db, third.id, 100)

        board = get_leaderboard(db, "ALL_TIME")
        assert [(e["rank"], e["user_id"], e["points"]) for e in board] == [
            (1, first.id, 900), (2, second.id, 300), (3, third.id, 100),
        ]
        assert board[0]["level"] == 2

    def test_ties_keep_sequential_ranks(self, db, make_user):
        a, b = make_user(), make_user()
        earn(db, a.id, 200)
        earn(db, b.id, 200)
        board = get_leaderboard(db, "ALL_TIME")
        assert [e["rank"] for e in board] == [1, 2]
        assert [e["user_id"] for e in board] == [a.id, b.id]

    def test_limit(self, db, make_user):
        for points in (50, 40, 30):
            earn(db, make_user().id, points)
        assert len(get_leaderboard(db, "ALL_TIME", limit=2)) == 2

    def test_technician_fields(self, db, make_technician):
        technician = make_technician()
        db.query(Technician).filter(Technician.id == technician.id).update(
            {Technician.total_jobs_completed: 12, Technician.rating: 4.75})
        db.commit()
        earn(db, technician.user_id, 100)

        entry = get_leaderboard(db, "ALL_TIME")[0]
        assert entry["role"] == "technician"
        assert entry["jobs_completed"] == 12
        assert entry["average_rating"] == 4.75


class TestPeriods:
    @pytest.fixture
    def history(self, db, make_user):
        a, b, c = make_user(), make_user(), make_user()
        ledger_row(db, a.id, 100, datetime(2025, 6, 16, 9, 0))
        ledger_row(db, a.id, -50, datetime(2025, 6, 17, 9, 0))
        ledger_row(db, a.id, 30, datetime(2025, 6, 10, 9, 0))
        ledger_row(db, b.id, 120, datetime(2025, 6, 2, 9, 0))
        ledger_row(db, c.id, 500, datetime(2025, 5, 20, 9, 0))
        return a, b, c

    def test_weekly_counts_positive_rows_since_sunday(self, db, history):
        a, _, _ = history
        board = get_leaderboard(db, "WEEKLY", now=NOW)
        assert [(e["rank"], e["user_id"], e["points"]) for e in board] == [(1, a.id, 100)]

    def test_monthly(self, db, history):
        a, b, _ = history
        board = get_leaderboard(db, "MONTHLY", now=NOW)
        assert [(e["user_id"], e["points"]) for e in board] == [(a.id, 130), (b.id, 120)]
        assert board[0]["level"] == 1

    def test_unknown_period(self, db):
        with pytest.raises(ValueError):
            get_leaderboard(db, "YEARLY")
