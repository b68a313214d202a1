from bible_quiz.models import Level, Quiz
from bible_quiz.seed import DEFAULT_LEVELS, seed_levels


def test_seed_levels_creates_catalog_and_intro_quiz(db):
    levels = seed_levels(db)

    assert [lvl.difficulty for lvl in levels] == [1, 2, 3, 4, 5]
    assert all(0 <= lvl.min_score <= 100 for lvl in levels)
    quiz = db.query(Quiz).one()
    assert quiz.level_id == levels[0].id
    assert len(quiz.questions) == 3
    assert all(sum(a.is_correct for a in q.answers) == 1 for q in quiz.questions)


def test_seed_levels_is_idempotent(db):
    seed_levels(db)
    again = seed_levels(db)

    assert len(again) == len(DEFAULT_LEVELS)
    assert db.query(Level).count() == len(DEFAULT_LEVELS)
    assert db.query(Quiz).count() == 1
