"""Per-level progress tracking.

A level counts as completed once an attempt reaches the level's
``min_score`` percentage. Completing level N pre-unlocks level N+1 by
creating an empty progress row for it (the "cascade unlock").

Progress rows only ever improve: best score and best percentage are raised,
never lowered, and ``is_unlocked`` never goes back to ``False``. The update
is a single conditional ``UPDATE`` so two concurrent submissions cannot
overwrite each other's best score.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import case, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bible_quiz.errors import AppError
from bible_quiz.models import Level, QuizAttempt, UserProgress, utcnow

logger = logging.getLogger(__name__)


@dataclass
class ProgressUpdate:
    progress: UserProgress
    next_level_progress: UserProgress | None
    achievements: dict = field(default_factory=dict)


def level_percentage(score: int, max_score: int) -> float:
    if max_score < 1:
        raise AppError.validation("maxScore must be at least 1")
    if score < 0 or score > max_score:
        raise AppError.validation("score must be between 0 and maxScore")
    return score * 100 / max_score


def _apply_attempt(
    db: Session,
    *,
    user_id: int,
    level_id: int,
    score: int,
    percentage: float,
    completed: bool,
    now: datetime,
) -> int:
    values = {
        "best_score": case((UserProgress.best_score < score, score), else_=UserProgress.best_score),
        "best_percentage": case(
            (UserProgress.best_percentage < percentage, percentage), else_=UserProgress.best_percentage
        ),
        "attempts_count": UserProgress.attempts_count + 1,
        "last_attempt_at": now,
    }
    if completed:
        values["is_unlocked"] = True

    result = db.execute(
        update(UserProgress)
        .where(UserProgress.user_id == user_id, UserProgress.level_id == level_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


def _load_progress(db: Session, user_id: int, level_id: int) -> UserProgress | None:
    return db.scalars(
        select(UserProgress)
        .where(UserProgress.user_id == user_id, UserProgress.level_id == level_id)
        .execution_options(populate_existing=True)
    ).first()


def _unlock_next_level(db: Session, *, user_id: int, level: Level) -> UserProgress | None:
    next_level = db.scalar(select(Level).where(Level.difficulty == level.difficulty + 1))
    if next_level is None:
        return None
    if _load_progress(db, user_id, next_level.id) is not None:
        return None

    row = UserProgress(
        user_id=user_id,
        level_id=next_level.id,
        best_score=0,
        best_percentage=0,
        is_unlocked=True,
        attempts_count=0,
    )
    try:
        with db.begin_nested():
            db.add(row)
    except IntegrityError:
        logger.info("Progress for user=%s level=%s was created concurrently; keeping it", user_id, next_level.id)
        return None

    logger.info("Unlocked level %s (%s) for user=%s", next_level.difficulty, next_level.name, user_id)
    return row


def record_level_result(
    db: Session,
    *,
    user_id: int,
    level: Level,
    score: int,
    max_score: int,
    now: datetime | None = None,
) -> ProgressUpdate:
    """Fold one level result into the user's progress. Caller commits."""
    now = now or utcnow()
    percentage = level_percentage(score, max_score)
    completed = percentage >= level.min_score

    attempt = dict(user_id=user_id, level_id=level.id, score=score, percentage=percentage, completed=completed, now=now)
    first_attempt = False
    if not _apply_attempt(db, **attempt):
        try:
            with db.begin_nested():
                db.add(
                    UserProgress(
                        user_id=user_id,
                        level_id=level.id,
                        best_score=score,
                        best_percentage=percentage,
                        is_unlocked=completed,
                        attempts_count=1,
                        last_attempt_at=now,
                    )
                )
            first_attempt = True
        except IntegrityError:
            # a concurrent first attempt inserted the row; fold into it instead
            _apply_attempt(db, **attempt)

    progress = _load_progress(db, user_id, level.id)

    next_level_progress = None
    if completed:
        next_level_progress = _unlock_next_level(db, user_id=user_id, level=level)

    logger.info(
        "Progress updated (user=%s, level=%s, percentage=%.2f, completed=%s, first_attempt=%s)",
        user_id,
        level.id,
        percentage,
        completed,
        first_attempt,
    )
    return ProgressUpdate(
        progress=progress,
        next_level_progress=next_level_progress,
        achievements={
            "level_completed": completed,
            "perfect_score": percentage == 100,
            "first_attempt": first_attempt,
            "next_level_unlocked": next_level_progress is not None,
        },
    )


def list_progress(db: Session, user_id: int) -> list[UserProgress]:
    return list(
        db.scalars(
            select(UserProgress)
            .join(Level, UserProgress.level_id == Level.id)
            .where(UserProgress.user_id == user_id)
            .order_by(Level.difficulty.asc())
        )
    )


def summarize_attempts(attempts: list[QuizAttempt]) -> dict:
    """Aggregate attempt statistics overall and per level.

    ``average_score`` is the mean of per-attempt percentages, not total
    correct over total possible.
    """
    total_attempts = len(attempts)
    total_score = sum(a.score for a in attempts)
    total_possible = sum(a.total_questions for a in attempts)
    average = total_score / total_attempts if total_attempts else 0

    by_level: dict[int, dict] = {}
    for attempt in attempts:
        level = attempt.quiz.level
        bucket = by_level.setdefault(
            level.id,
            {"level": level, "attempt_count": 0, "total_score": 0, "total_possible": 0, "best_score": 0},
        )
        bucket["attempt_count"] += 1
        bucket["total_score"] += attempt.score
        bucket["total_possible"] += attempt.total_questions
        bucket["best_score"] = max(bucket["best_score"], attempt.score)

    per_level = []
    for bucket in by_level.values():
        bucket["average_score"] = round(bucket["total_score"] / bucket["attempt_count"], 2)
        per_level.append(bucket)
    per_level.sort(key=lambda b: b["level"].difficulty)

    return {
        "total_attempts": total_attempts,
        "total_score": total_score,
        "total_possible_score": total_possible,
        "average_score": round(average, 2),
        "attempts_by_level": per_level,
    }
