from types import SimpleNamespace

from bible_quiz.scoring import grade_submission, percent_round_half_up


def make_question(question_id: int, correct_answer_id: int, wrong_answer_ids=(0,)):
    answers = [SimpleNamespace(id=correct_answer_id, is_correct=True)]
    answers += [SimpleNamespace(id=a, is_correct=False) for a in wrong_answer_ids]
    return SimpleNamespace(id=question_id, answers=answers)


def submit(question_id: int, answer_id: int):
    return SimpleNamespace(question_id=question_id, answer_id=answer_id)


def test_three_of_four_correct_scores_75():
    questions = [make_question(i, correct_answer_id=i * 10) for i in range(1, 5)]
    submissions = [submit(1, 10), submit(2, 20), submit(3, 30), submit(4, 0)]

    result = grade_submission(questions, submissions)

    assert result.correct_answers == 3
    assert result.total_questions == 4
    assert result.score == 75


def test_unanswered_and_foreign_submissions_are_not_errors():
    questions = [make_question(1, 10), make_question(2, 20), make_question(3, 30)]
    submissions = [submit(1, 10), submit(99, 990)]

    result = grade_submission(questions, submissions)

    assert (result.correct_answers, result.total_questions, result.score) == (1, 3, 33)


def test_first_submission_for_a_question_wins():
    questions = [make_question(1, 10)]

    assert grade_submission(questions, [submit(1, 0), submit(1, 10)]).score == 0
    assert grade_submission(questions, [submit(1, 10), submit(1, 0)]).score == 100


def test_answer_from_another_question_is_incorrect():
    questions = [make_question(1, 10), make_question(2, 20)]

    result = grade_submission(questions, [submit(1, 20), submit(2, 10)])

    assert result.correct_answers == 0


def test_half_percentages_round_up():
    assert percent_round_half_up(1, 8) == 13
    assert percent_round_half_up(5, 8) == 63
    assert percent_round_half_up(1, 3) == 33
    assert percent_round_half_up(2, 3) == 67
    assert percent_round_half_up(1, 200) == 1


def test_empty_quiz_scores_zero():
    result = grade_submission([], [submit(1, 1)])
    assert (result.correct_answers, result.total_questions, result.score) == (0, 0, 0)


def test_score_formula_holds_for_every_correct_count():
    for total in range(1, 13):
        questions = [make_question(i, correct_answer_id=100 + i) for i in range(total)]
        for correct in range(total + 1):
            submissions = [submit(i, 100 + i if i < correct else 0) for i in range(total)]
            result = grade_submission(questions, submissions)
            assert result.correct_answers == correct <= result.total_questions
            assert 0 <= result.score <= 100
            assert abs(result.score - correct / total * 100) <= 0.5
