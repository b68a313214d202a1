from dataclasses import dataclass
from typing import Iterable, Protocol, Sequence


class _AnswerLike(Protocol):
    id: int
    is_correct: bool


class _QuestionLike(Protocol):
    id: int
    answers: Sequence[_AnswerLike]


class _SubmissionLike(Protocol):
    question_id: int
    answer_id: int


@dataclass(frozen=True)
class GradeResult:
    correct_answers: int
    total_questions: int
    score: int


def percent_round_half_up(part: int, whole: int) -> int:
    """``round(part / whole * 100)`` with halves rounded up, in exact integer math."""
    if whole <= 0:
        return 0
    return (200 * part + whole) // (2 * whole)


def grade_submission(questions: Sequence[_QuestionLike], submissions: Iterable[_SubmissionLike]) -> GradeResult:
    # first submission per question wins; ids for other quizzes are ignored
    selected: dict[int, int] = {}
    for submission in submissions:
        selected.setdefault(submission.question_id, submission.answer_id)

    correct = 0
    for question in questions:
        answer_id = selected.get(question.id)
        if answer_id is None:
            continue
        correct_ids = {a.id for a in question.answers if a.is_correct}
        if answer_id in correct_ids:
            correct += 1

    total = len(questions)
    return GradeResult(correct_answers=correct, total_questions=total, score=percent_round_half_up(correct, total))
