import threading
from datetime import datetime, timezone

import pytest
from sqlmodel import SQLModel, Session, create_engine, select

from stemplay.errors import ValidationError
from stemplay.leaderboard import (
    ALL_TIME_BUCKET, MAX_POINTS, bucket_for_window, buckets_for, get_entry, record_score, reset_scope,
)
from stemplay.models import LeaderboardEntry, ScoreSubmission

MONDAY = datetime(2026, 10, 12, 9, 0, tzinfo=timezone.utc)
TUESDAY = datetime(2026, 10, 13, 9, 0, tzinfo=timezone.utc)
GAME = "game:circuitsnap"


def test_buckets_for_timestamp():
    assert buckets_for(MONDAY) == ["day:2026-10-12", "week:2026-W42", "all"]


def test_week_bucket_uses_iso_year():
    assert buckets_for(datetime(2027, 1, 1, tzinfo=timezone.utc))[1] == "week:2026-W53"


def test_bucket_for_window():
    assert bucket_for_window(None, MONDAY) == ALL_TIME_BUCKET
    assert bucket_for_window("daily", MONDAY) == "day:2026-10-12"
    assert bucket_for_window("weekly", MONDAY) == "week:2026-W42"
    with pytest.raises(ValidationError):
        bucket_for_window("monthly", MONDAY)


def test_record_score_writes_three_buckets(session):
    record_score(session, GAME, "class-a", "s1", 120, MONDAY)
    session.commit()

    rows = session.exec(select(LeaderboardEntry)).all()
    assert sorted(r.window_bucket for r in rows) == ["all", "day:2026-10-12", "week:2026-W42"]
    assert all(r.best_points == 120 for r in rows)


def test_lower_score_never_lowers_best(session):
    record_score(session, GAME, "class-a", "s1", 300, MONDAY, meta={"level": 1})
    session.commit()
    record_score(session, GAME, "class-a", "s1", 250, MONDAY.replace(hour=10))
    session.commit()

    entry = get_entry(session, GAME, "class-a", "s1")
    assert entry.best_points == 300
    assert entry.best_meta == {"level": 1}
    assert entry.achieved_at.replace(tzinfo=None) == MONDAY.replace(tzinfo=None)


def test_equal_score_keeps_original_achieved_at(session):
    record_score(session, GAME, "class-a", "s1", 300, MONDAY)
    record_score(session, GAME, "class-a", "s1", 300, MONDAY.replace(hour=11))
    session.commit()

    entry = get_entry(session, GAME, "class-a", "s1")
    assert entry.achieved_at.replace(tzinfo=None) == MONDAY.replace(tzinfo=None)


def test_higher_score_updates_best_and_time(session):
    record_score(session, GAME, "class-a", "s1", 100, MONDAY)
    record_score(session, GAME, "class-a", "s1", 180, TUESDAY)
    session.commit()

    entry = get_entry(session, GAME, "class-a", "s1")
    assert entry.best_points == 180
    assert entry.achieved_at.replace(tzinfo=None) == TUESDAY.replace(tzinfo=None)


def test_buckets_are_tracked_independently(session):
    record_score(session, GAME, "class-a", "s1", 100, MONDAY)
    record_score(session, GAME, "class-a", "s1", 50, TUESDAY)
    session.commit()

    assert get_entry(session, GAME, "class-a", "s1", "day:2026-10-12").best_points == 100
    assert get_entry(session, GAME, "class-a", "s1", "day:2026-10-13").best_points == 50
    assert get_entry(session, GAME, "class-a", "s1", "week:2026-W42").best_points == 100
    assert get_entry(session, GAME, "class-a", "s1").best_points == 100


def test_best_points_non_decreasing_over_sequence(session):
    best = 0
    for points in [40, 10, 90, 90, 20, 150, 0, 149]:
        record_score(session, GAME, "class-a", "s1", points, MONDAY)
        session.commit()
        best = max(best, points)
        assert get_entry(session, GAME, "class-a", "s1").best_points == best


def test_out_of_range_points_rejected(session):
    for points in (-5, float("nan"), float("inf"), MAX_POINTS + 1, 1e30):
        with pytest.raises(ValidationError):
            record_score(session, GAME, "class-a", "s1", points, MONDAY)
    assert session.exec(select(ScoreSubmission)).all() == []


def test_submissions_are_logged(session):
    record_score(session, GAME, "class-a", "s1", 10, MONDAY, meta={"time": 42})
    session.commit()
    logged = session.exec(select(ScoreSubmission)).all()
    assert len(logged) == 1
    assert logged[0].meta == {"time": 42}


def test_reset_removes_all_buckets_for_scope_only(session):
    record_score(session, GAME, "class-a", "s1", 100, MONDAY)
    record_score(session, GAME, "class-a", "s2", 80, TUESDAY)
    record_score(session, GAME, "class-b", "s3", 70, MONDAY)
    record_score(session, "game:sudoku-lv1", "class-a", "s1", 60, MONDAY)
    session.commit()

    deleted = reset_scope(session, GAME, "class-a")
    assert deleted == 6

    remaining = session.exec(select(LeaderboardEntry)).all()
    assert {(r.subject_key, r.scope_id) for r in remaining} == {
        (GAME, "class-b"),
        ("game:sudoku-lv1", "class-a"),
    }
    assert len(remaining) == 6
    logged = session.exec(select(ScoreSubmission)).all()
    assert {(s.subject_key, s.scope_id) for s in logged} == {
        (GAME, "class-b"),
        ("game:sudoku-lv1", "class-a"),
    }


def test_reset_is_idempotent(session):
    assert reset_scope(session, GAME, "class-a") == 0
    assert reset_scope(session, GAME, "class-a") == 0


def test_concurrent_submissions_keep_the_max(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'ledger.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    SQLModel.metadata.create_all(engine)
    scores = [50, 400, 120, 399, 10, 250, 300, 5]
    errors = []

    def submit(points):
        try:
            with Session(engine) as s:
                record_score(s, GAME, "class-a", "s1", points, MONDAY)
                s.commit()
        except Exception as e:  # surfaced below
            errors.append(e)

    threads = [threading.Thread(target=submit, args=(p,)) for p in scores]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    with Session(engine) as s:
        assert get_entry(s, GAME, "class-a", "s1").best_points == 400
    engine.dispose()
