from datetime import datetime, timedelta, timezone

import pytest

from conftest import make_user
from stemplay import ranking
from stemplay.errors import ValidationError
from stemplay.leaderboard import record_score

T0 = datetime(2026, 10, 14, 8, 0, tzinfo=timezone.utc)
GAME = "game:mathtrail-lv3"


def _seed(session, rows):
    for student_id, points, ts in rows:
        record_score(session, GAME, "class-a", student_id, points, ts)
    session.commit()


def test_orders_by_points_then_time_then_student(session):
    _seed(session, [
        ("carol", 200, T0 + timedelta(minutes=5)),
        ("bob", 300, T0 + timedelta(minutes=9)),
        ("dave", 200, T0),
        ("alice", 200, T0 + timedelta(minutes=5)),
    ])

    top, _ = ranking.query(session, GAME, "class-a", None)
    assert [(r.rank, r.student_id, r.best_points) for r in top] == [
        (1, "bob", 300),
        (2, "dave", 200),
        (3, "alice", 200),
        (4, "carol", 200),
    ]


def test_result_is_a_total_order(session):
    _seed(session, [
        (f"s{i:02d}", (i * 37) % 5 * 10, T0 + timedelta(seconds=(i * 13) % 4))
        for i in range(12)
    ])
    top, _ = ranking.query(session, GAME, "class-a", None)

    keys = [(-r.best_points, r.achieved_at, r.student_id) for r in top]
    assert keys == sorted(keys)
    assert [r.rank for r in top] == list(range(1, len(top) + 1))


def test_requester_rank_outside_top_n(session):
    _seed(session, [
        ("a", 400, T0),
        ("b", 300, T0),
        ("c", 200, T0),
        ("d", 100, T0),
    ])

    top, you = ranking.query(session, GAME, "class-a", None, requester_id="d", limit=2)
    assert [r.student_id for r in top] == ["a", "b"]
    assert you.rank == 4
    assert you.best_points == 100


def test_requester_rank_counts_ties_ahead(session):
    _seed(session, [
        ("a", 100, T0),
        ("b", 100, T0),
        ("c", 100, T0 - timedelta(hours=1)),
    ])
    _, you = ranking.query(session, GAME, "class-a", None, requester_id="b")
    # c is earlier, a shares the timestamp but sorts first by id
    assert you.rank == 3


def test_requester_without_entry_is_unranked(session):
    _seed(session, [("a", 100, T0)])
    top, you = ranking.query(session, GAME, "class-a", None, requester_id="nobody")
    assert len(top) == 1
    assert you is None


def test_names_are_joined(session):
    student = make_user(session, "Ada")
    _seed(session, [(student.id, 50, T0), ("ghost", 40, T0)])
    top, _ = ranking.query(session, GAME, "class-a", None)
    assert [r.name for r in top] == ["Ada", "Student"]


def test_daily_and_weekly_windows(session):
    monday = datetime(2026, 10, 12, 10, 0, tzinfo=timezone.utc)
    wednesday = monday + timedelta(days=2)
    _seed(session, [
        ("a", 500, monday),
        ("b", 100, wednesday),
        ("a", 50, wednesday),
    ])

    daily, _ = ranking.query(session, GAME, "class-a", "daily", now=wednesday)
    assert [(r.student_id, r.best_points) for r in daily] == [("b", 100), ("a", 50)]

    weekly, _ = ranking.query(session, GAME, "class-a", "weekly", now=wednesday)
    assert [(r.student_id, r.best_points) for r in weekly] == [("a", 500), ("b", 100)]

    next_week, _ = ranking.query(session, GAME, "class-a", "weekly", now=monday + timedelta(days=7))
    assert next_week == []


def test_scopes_are_isolated(session):
    record_score(session, GAME, "class-a", "a", 100, T0)
    record_score(session, GAME, "class-b", "b", 900, T0)
    session.commit()

    top, _ = ranking.query(session, GAME, "class-a", None)
    assert [r.student_id for r in top] == ["a"]


def test_unknown_window_rejected(session):
    with pytest.raises(ValidationError):
        ranking.query(session, GAME, "class-a", "yearly")
