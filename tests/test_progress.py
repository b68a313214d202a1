from types import SimpleNamespace

import pytest

from bible_quiz.errors import AppError, ErrorType
from bible_quiz.models import Level, User, UserProgress
from bible_quiz.progress import level_percentage, list_progress, record_level_result, summarize_attempts


def make_user(db, email="reader@example.com"):
    user = User(name="Reader", email=email, password_hash="x")
    db.add(user)
    db.flush()
    return user


def make_levels(db, *min_scores):
    levels = [
        Level(name=f"Level {i + 1}", description="", difficulty=i + 1, min_score=min_score)
        for i, min_score in enumerate(min_scores)
    ]
    db.add_all(levels)
    db.flush()
    return levels


def test_first_attempt_below_threshold_creates_locked_row(db):
    user = make_user(db)
    first, second = make_levels(db, 70, 70)

    outcome = record_level_result(db, user_id=user.id, level=first, score=6, max_score=10)
    db.commit()

    assert outcome.progress.best_score == 6
    assert outcome.progress.best_percentage == 60
    assert outcome.progress.is_unlocked is False
    assert outcome.progress.attempts_count == 1
    assert outcome.progress.last_attempt_at is not None
    assert outcome.next_level_progress is None
    assert outcome.achievements == {
        "level_completed": False,
        "perfect_score": False,
        "first_attempt": True,
        "next_level_unlocked": False,
    }
    assert [p.level_id for p in list_progress(db, user.id)] == [first.id]


def test_passing_unlocks_next_level_with_empty_row(db):
    user = make_user(db)
    first, second = make_levels(db, 70, 70)

    record_level_result(db, user_id=user.id, level=first, score=6, max_score=10)
    outcome = record_level_result(db, user_id=user.id, level=first, score=8, max_score=10)
    db.commit()

    assert outcome.progress.is_unlocked is True
    assert outcome.progress.best_percentage == 80
    assert outcome.progress.attempts_count == 2
    unlocked = outcome.next_level_progress
    assert unlocked.level_id == second.id
    assert (unlocked.best_score, unlocked.best_percentage, unlocked.attempts_count) == (0, 0, 0)
    assert unlocked.is_unlocked is True
    assert unlocked.last_attempt_at is None
    assert outcome.achievements["next_level_unlocked"] is True
    assert outcome.achievements["first_attempt"] is False


def test_best_scores_never_decrease_and_unlock_never_reverts(db):
    user = make_user(db)
    (level,) = make_levels(db, 50)

    seen = []
    for score in [9, 3, 10, 0, 7]:
        outcome = record_level_result(db, user_id=user.id, level=level, score=score, max_score=10)
        seen.append((outcome.progress.best_percentage, outcome.progress.is_unlocked))
    db.commit()

    percentages = [p for p, _ in seen]
    assert percentages == sorted(percentages)
    assert percentages[-1] == 100
    assert all(unlocked for _, unlocked in seen)
    assert outcome.progress.best_score == 10
    assert outcome.progress.attempts_count == 5


def test_cascade_never_overwrites_existing_next_level_row(db):
    user = make_user(db)
    first, second = make_levels(db, 70, 70)
    db.add(
        UserProgress(
            user_id=user.id,
            level_id=second.id,
            best_score=4,
            best_percentage=40,
            is_unlocked=False,
            attempts_count=3,
        )
    )
    db.flush()

    outcome = record_level_result(db, user_id=user.id, level=first, score=10, max_score=10)
    db.commit()

    assert outcome.next_level_progress is None
    assert outcome.achievements["next_level_unlocked"] is False
    existing = db.query(UserProgress).filter_by(user_id=user.id, level_id=second.id).one()
    assert (existing.best_score, existing.attempts_count, existing.is_unlocked) == (4, 3, False)


def test_repeated_passes_create_at_most_one_next_level_row(db):
    user = make_user(db)
    first, second = make_levels(db, 70, 70)

    results = [record_level_result(db, user_id=user.id, level=first, score=9, max_score=10) for _ in range(3)]
    db.commit()

    assert [r.achievements["next_level_unlocked"] for r in results] == [True, False, False]
    assert db.query(UserProgress).filter_by(user_id=user.id, level_id=second.id).count() == 1


def test_top_level_has_nothing_to_unlock(db):
    user = make_user(db)
    (only,) = make_levels(db, 90)

    outcome = record_level_result(db, user_id=user.id, level=only, score=5, max_score=5)

    assert outcome.achievements["perfect_score"] is True
    assert outcome.achievements["level_completed"] is True
    assert outcome.next_level_progress is None


def test_first_real_attempt_on_cascade_unlocked_level(db):
    user = make_user(db)
    first, second = make_levels(db, 70, 70)
    record_level_result(db, user_id=user.id, level=first, score=10, max_score=10)

    outcome = record_level_result(db, user_id=user.id, level=second, score=3, max_score=10)

    assert outcome.progress.attempts_count == 1
    assert outcome.progress.best_percentage == 30
    assert outcome.progress.is_unlocked is True
    assert outcome.achievements["first_attempt"] is False
    assert outcome.achievements["level_completed"] is False


def test_progress_is_per_user(db):
    alice = make_user(db, "alice@example.com")
    bob = make_user(db, "bob@example.com")
    (level,) = make_levels(db, 70)

    record_level_result(db, user_id=alice.id, level=level, score=10, max_score=10)
    outcome = record_level_result(db, user_id=bob.id, level=level, score=1, max_score=10)

    assert outcome.achievements["first_attempt"] is True
    assert outcome.progress.best_percentage == 10


@pytest.mark.parametrize("score,max_score", [(1, 0), (-1, 10), (11, 10)])
def test_level_percentage_rejects_out_of_range_scores(score, max_score):
    with pytest.raises(AppError) as exc_info:
        level_percentage(score, max_score)
    assert exc_info.value.type is ErrorType.VALIDATION
    assert exc_info.value.status_code == 400


def test_summarize_attempts_uses_mean_of_attempt_percentages():
    easy = SimpleNamespace(id=1, difficulty=1)
    hard = SimpleNamespace(id=2, difficulty=2)
    attempts = [
        SimpleNamespace(score=100, total_questions=2, quiz=SimpleNamespace(level=hard)),
        SimpleNamespace(score=50, total_questions=10, quiz=SimpleNamespace(level=easy)),
        SimpleNamespace(score=25, total_questions=4, quiz=SimpleNamespace(level=easy)),
    ]

    stats = summarize_attempts(attempts)

    assert stats["total_attempts"] == 3
    assert stats["total_score"] == 175
    assert stats["total_possible_score"] == 16
    assert stats["average_score"] == 58.33
    assert [b["level"].id for b in stats["attempts_by_level"]] == [1, 2]
    easy_bucket = stats["attempts_by_level"][0]
    assert easy_bucket["attempt_count"] == 2
    assert easy_bucket["best_score"] == 50
    assert easy_bucket["average_score"] == 37.5


def test_summarize_attempts_without_attempts():
    stats = summarize_attempts([])
    assert stats["average_score"] == 0
    assert stats["attempts_by_level"] == []
