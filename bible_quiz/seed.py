"""Default level catalog and an introductory quiz.

Run with ``python -m bible_quiz.seed``.
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from bible_quiz.database import SessionLocal, init_db
from bible_quiz.models import Answer, Level, Question, Quiz

logger = logging.getLogger(__name__)

# min_score is the percentage needed on a level to complete it and unlock the next one
DEFAULT_LEVELS = [
    ("Beginner", "For those just starting to study the Bible", 1, 60),
    ("Basic", "Basic knowledge of Bible stories", 2, 70),
    ("Intermediate", "Teachings of Jesus and parables", 3, 75),
    ("Advanced", "Theology and in-depth knowledge", 4, 80),
    ("Expert", "Deep knowledge of the Scriptures", 5, 90),
]

INTRO_QUIZ = {
    "title": "Old Testament Stories",
    "description": "Beginner quiz about the main stories of the Old Testament",
    "questions": [
        (
            "Who was the first man created by God?",
            "Genesis 2:7",
            "Adam was the first man, formed by God from the dust of the ground.",
            [("Abraham", False), ("Adam", True), ("Moses", False), ("Noah", False)],
        ),
        (
            "In how many days did God create the world?",
            "Genesis 1:31-2:2",
            "God created the world in six days and rested on the seventh.",
            [("5 days", False), ("6 days", True), ("7 days", False), ("8 days", False)],
        ),
        (
            "Who did the serpent deceive in the Garden of Eden?",
            "Genesis 3:1-6",
            "The serpent deceived Eve, offering her the forbidden fruit.",
            [("Eve", True), ("Adam", False), ("Abel", False), ("Cain", False)],
        ),
    ],
}


def seed_levels(db: Session) -> list[Level]:
    """Insert the default catalog when the levels table is empty. Idempotent."""
    if db.scalar(select(func.count(Level.id))):
        logger.info("Levels already present; skipping seed")
        return list(db.scalars(select(Level).order_by(Level.difficulty)))

    levels = [
        Level(name=name, description=description, difficulty=difficulty, min_score=min_score)
        for name, description, difficulty, min_score in DEFAULT_LEVELS
    ]
    db.add_all(levels)
    db.flush()

    quiz = Quiz(title=INTRO_QUIZ["title"], description=INTRO_QUIZ["description"], level_id=levels[0].id)
    for text, verse, explanation, answers in INTRO_QUIZ["questions"]:
        quiz.questions.append(
            Question(
                question_text=text,
                difficulty=1,
                bible_verse=verse,
                explanation=explanation,
                answers=[Answer(answer_text=a, is_correct=ok) for a, ok in answers],
            )
        )
    db.add(quiz)
    db.commit()
    logger.info("Seeded %s levels and quiz %r", len(levels), quiz.title)
    return levels


def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    init_db()
    db = SessionLocal()
    try:
        seed_levels(db)
    finally:
        db.close()


if __name__ == "__main__":
    main()
