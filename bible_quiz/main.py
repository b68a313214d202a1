import logging
import math
import time

from fastapi import Depends, FastAPI, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from sqlalchemy import func, select, text
from sqlalchemy.orm import Session, selectinload
from starlette.exceptions import HTTPException as StarletteHTTPException

from bible_quiz.auth import (
    SESSION_COOKIE,
    authenticate,
    clear_session_cookie,
    create_session,
    create_user,
    destroy_session,
    get_current_user,
    get_current_user_optional,
    is_admin,
    normalize_email,
    require_admin,
    set_session_cookie,
)
from bible_quiz.config import settings
from bible_quiz.database import get_db, init_db
from bible_quiz.errors import AppError, error_response, new_request_id
from bible_quiz.models import Answer, Level, Question, Quiz, QuizAttempt, User
from bible_quiz.progress import list_progress, record_level_result, summarize_attempts
from bible_quiz.schemas import (
    AuthResponse,
    GenerateQuestionsRequest,
    GenerateQuestionsResponse,
    LevelCreate,
    LevelOut,
    LevelWithCountOut,
    LoginRequest,
    MessageResponse,
    QuizAttemptCreate,
    QuizAttemptOut,
    QuizAttemptResponse,
    QuizCreate,
    QuizListResponse,
    QuizOut,
    QuizUpdate,
    RegisterRequest,
    UserOut,
    UserProgressCreate,
    UserProgressResponse,
    UserProgressUpdateResponse,
)
from bible_quiz.scoring import grade_submission
from bible_quiz.services import ExternalServiceError, QuestionGenerationError, QuestionGenerator, persist_generated_quiz


def configure_logging():
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")


configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Bible Quiz")
service = QuestionGenerator()

init_db()


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or new_request_id()


def _error(request: Request, exc: Exception):
    return error_response(
        exc,
        request_id=_request_id(request),
        expose_details=not settings.is_production,
        context={"method": request.method, "path": request.url.path},
    )


@app.middleware("http")
async def request_context(request: Request, call_next):
    request.state.request_id = new_request_id()
    started = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception as exc:  # noqa: BLE001
        response = _error(request, exc)
    response.headers["X-Request-ID"] = request.state.request_id
    logger.info(
        "%s %s -> %s (%.1f ms) request_id=%s",
        request.method,
        request.url.path,
        response.status_code,
        (time.perf_counter() - started) * 1000,
        request.state.request_id,
    )
    return response


@app.exception_handler(AppError)
def handle_app_error(request: Request, exc: AppError):
    return _error(request, exc)


@app.exception_handler(RequestValidationError)
def handle_validation_error(request: Request, exc: RequestValidationError):
    return _error(request, exc)


@app.exception_handler(StarletteHTTPException)
def handle_http_error(request: Request, exc: StarletteHTTPException):
    return _error(request, exc)


def _user_out(user: User) -> dict:
    return {"id": user.id, "name": user.name, "email": user.email, "is_admin": is_admin(user)}


def _level_out(level: Level) -> dict:
    return {
        "id": level.id,
        "name": level.name,
        "description": level.description or "",
        "difficulty": level.difficulty,
        "min_score": level.min_score,
    }


def _quiz_summary(quiz: Quiz) -> dict:
    return {
        "id": quiz.id,
        "title": quiz.title,
        "description": quiz.description or "",
        "level_id": quiz.level_id,
        "is_active": quiz.is_active,
        "created_at": quiz.created_at,
        "level": _level_out(quiz.level),
        "question_count": len(quiz.questions),
    }


def _quiz_out(quiz: Quiz, *, reveal_answers: bool) -> dict:
    return {
        **_quiz_summary(quiz),
        "questions": [
            {
                "id": q.id,
                "question_text": q.question_text,
                "question_type": q.question_type,
                "difficulty": q.difficulty,
                "bible_verse": q.bible_verse,
                "explanation": q.explanation if reveal_answers else None,
                "answers": [
                    {"id": a.id, "answer_text": a.answer_text, "is_correct": a.is_correct if reveal_answers else None}
                    for a in q.answers
                ],
            }
            for q in quiz.questions
        ],
    }


def _attempt_out(attempt: QuizAttempt) -> dict:
    return {
        "id": attempt.id,
        "user_id": attempt.user_id,
        "quiz_id": attempt.quiz_id,
        "score": attempt.score,
        "correct_answers": attempt.correct_answers,
        "total_questions": attempt.total_questions,
        "time_spent": attempt.time_spent,
        "completed_at": attempt.completed_at,
        "quiz_title": attempt.quiz.title,
        "level": _level_out(attempt.quiz.level),
    }


def _progress_out(progress) -> dict:
    return {
        "id": progress.id,
        "user_id": progress.user_id,
        "level_id": progress.level_id,
        "best_score": progress.best_score,
        "best_percentage": progress.best_percentage,
        "is_unlocked": progress.is_unlocked,
        "attempts_count": progress.attempts_count,
        "last_attempt_at": progress.last_attempt_at,
        "level": _level_out(progress.level),
    }


def _load_quiz(db: Session, quiz_id: int) -> Quiz:
    quiz = db.scalar(
        select(Quiz)
        .where(Quiz.id == quiz_id)
        .options(selectinload(Quiz.level), selectinload(Quiz.questions).selectinload(Question.answers))
        .execution_options(populate_existing=True)
    )
    if quiz is None:
        raise AppError.not_found("Quiz not found")
    return quiz


def _require_level(db: Session, level_id: int) -> Level:
    level = db.get(Level, level_id)
    if level is None:
        raise AppError.not_found("Level not found")
    return level


@app.get("/api/health")
def health(db: Session = Depends(get_db)):
    db.execute(text("SELECT 1"))
    return {"status": "ok"}


@app.post("/api/auth/register", response_model=AuthResponse, status_code=201)
def register(payload: RegisterRequest, response: Response, db: Session = Depends(get_db)):
    try:
        user = create_user(db, payload.name, payload.email, payload.password)
    except AppError:
        logger.info("Registration rejected (email=%s, reason=email_already_exists)", normalize_email(payload.email))
        raise
    token = create_session(db, user)
    db.commit()

    set_session_cookie(response, token)
    logger.info("User registered (user_id=%s, email=%s)", user.id, user.email)
    return {"message": "User created successfully", "user": _user_out(user)}


@app.post("/api/auth/login", response_model=AuthResponse)
def login(payload: LoginRequest, request: Request, response: Response, db: Session = Depends(get_db)):
    user = authenticate(db, payload.email, payload.password)
    if user is None:
        logger.info(
            "Login failed (email=%s, ip=%s)",
            normalize_email(payload.email),
            request.client.host if request.client else None,
        )
        raise AppError.authentication("Invalid email or password")

    token = create_session(db, user)
    db.commit()

    set_session_cookie(response, token)
    logger.info("User logged in (user_id=%s)", user.id)
    return {"message": "Login successful", "user": _user_out(user)}


@app.post("/api/auth/logout", response_model=MessageResponse)
def logout(request: Request, response: Response, db: Session = Depends(get_db)):
    token = request.cookies.get(SESSION_COOKIE)
    if token:
        destroy_session(db, token)
        db.commit()
    clear_session_cookie(response)
    return {"message": "Logout successful"}


@app.get("/api/auth/me", response_model=UserOut)
def me(user: User = Depends(get_current_user)):
    return _user_out(user)


@app.get("/api/levels", response_model=list[LevelWithCountOut])
def list_levels(db: Session = Depends(get_db)):
    rows = db.execute(
        select(Level, func.count(Quiz.id))
        .outerjoin(Quiz, Quiz.level_id == Level.id)
        .group_by(Level.id)
        .order_by(Level.difficulty.asc())
    ).all()
    return [{**_level_out(level), "quiz_count": count} for level, count in rows]


@app.post("/api/levels", response_model=LevelOut, status_code=201)
def create_level(payload: LevelCreate, db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    if db.scalar(select(Level).where(Level.difficulty == payload.difficulty)):
        raise AppError.conflict(f"A level with difficulty {payload.difficulty} already exists")
    level = Level(**payload.model_dump())
    db.add(level)
    db.commit()
    logger.info("Level created (id=%s, difficulty=%s, by=%s)", level.id, level.difficulty, admin.id)
    return _level_out(level)


@app.get("/api/quizzes", response_model=QuizListResponse)
def list_quizzes(
    level_id: int | None = Query(default=None, alias="levelId"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    filters = [Quiz.is_active.is_(True)]
    if level_id is not None:
        filters.append(Quiz.level_id == level_id)

    total = db.scalar(select(func.count(Quiz.id)).where(*filters))
    quizzes = db.scalars(
        select(Quiz)
        .where(*filters)
        .options(selectinload(Quiz.level), selectinload(Quiz.questions))
        .order_by(Quiz.created_at.desc(), Quiz.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()
    return {
        "quizzes": [_quiz_summary(q) for q in quizzes],
        "pagination": {"page": page, "limit": limit, "total": total, "total_pages": math.ceil(total / limit)},
    }


@app.post("/api/quizzes", response_model=QuizOut, status_code=201)
def create_quiz(payload: QuizCreate, db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    _require_level(db, payload.level_id)
    quiz = Quiz(
        title=payload.title.strip(),
        description=payload.description.strip(),
        level_id=payload.level_id,
        is_active=payload.is_active,
    )
    for q in payload.questions:
        quiz.questions.append(
            Question(
                question_text=q.question_text.strip(),
                question_type=q.question_type,
                difficulty=q.difficulty,
                bible_verse=q.bible_verse,
                explanation=q.explanation,
                answers=[Answer(answer_text=a.answer_text.strip(), is_correct=a.is_correct) for a in q.answers],
            )
        )
    db.add(quiz)
    db.commit()
    logger.info("Quiz created (id=%s, questions=%s, by=%s)", quiz.id, len(payload.questions), admin.id)
    return _quiz_out(_load_quiz(db, quiz.id), reveal_answers=True)


@app.get("/api/quizzes/{quiz_id}", response_model=QuizOut)
def get_quiz(quiz_id: int, db: Session = Depends(get_db), user: User | None = Depends(get_current_user_optional)):
    quiz = _load_quiz(db, quiz_id)
    return _quiz_out(quiz, reveal_answers=user is not None and is_admin(user))


@app.put("/api/quizzes/{quiz_id}", response_model=QuizOut)
def update_quiz(
    quiz_id: int,
    payload: QuizUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    quiz = _load_quiz(db, quiz_id)
    changes = payload.model_dump(exclude_unset=True)
    if changes.get("level_id") is not None:
        _require_level(db, changes["level_id"])
    for key, value in changes.items():
        if value is not None:
            setattr(quiz, key, value)
    db.commit()
    logger.info("Quiz updated (id=%s, fields=%s, by=%s)", quiz.id, sorted(changes), admin.id)
    return _quiz_out(_load_quiz(db, quiz_id), reveal_answers=True)


@app.delete("/api/quizzes/{quiz_id}", response_model=MessageResponse)
def delete_quiz(quiz_id: int, db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    quiz = _load_quiz(db, quiz_id)
    attempts = db.scalar(select(func.count(QuizAttempt.id)).where(QuizAttempt.quiz_id == quiz_id))
    if attempts:
        raise AppError.conflict("Quiz has recorded attempts and cannot be deleted; deactivate it instead")
    db.delete(quiz)
    db.commit()
    logger.info("Quiz deleted (id=%s, by=%s)", quiz_id, admin.id)
    return {"message": "Quiz deleted successfully"}


@app.post("/api/quiz-attempts", response_model=QuizAttemptResponse, status_code=201)
def submit_quiz_attempt(
    payload: QuizAttemptCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    quiz = _load_quiz(db, payload.quiz_id)
    result = grade_submission(quiz.questions, payload.answers)

    attempt = QuizAttempt(
        user_id=user.id,
        quiz_id=quiz.id,
        score=result.score,
        correct_answers=result.correct_answers,
        total_questions=result.total_questions,
        time_spent=payload.time_spent,
    )
    db.add(attempt)
    db.commit()

    logger.info(
        "Quiz attempt recorded (user=%s, quiz=%s, score=%s, correct=%s/%s, time_spent=%s)",
        user.id,
        quiz.id,
        result.score,
        result.correct_answers,
        result.total_questions,
        payload.time_spent,
    )
    return {
        "attempt": _attempt_out(attempt),
        "results": {
            "score": result.score,
            "correct_answers": result.correct_answers,
            "total_questions": result.total_questions,
            "percentage": result.score,
        },
    }


def _user_attempts(db: Session, user_id: int) -> list[QuizAttempt]:
    return list(
        db.scalars(
            select(QuizAttempt)
            .where(QuizAttempt.user_id == user_id)
            .options(selectinload(QuizAttempt.quiz).selectinload(Quiz.level))
            .order_by(QuizAttempt.completed_at.desc(), QuizAttempt.id.desc())
        )
    )


@app.get("/api/quiz-attempts", response_model=list[QuizAttemptOut])
def list_quiz_attempts(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return [_attempt_out(a) for a in _user_attempts(db, user.id)]


@app.get("/api/user-progress", response_model=UserProgressResponse)
def get_user_progress(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    attempts = _user_attempts(db, user.id)
    stats = summarize_attempts(attempts)
    return {
        "user_progress": [_progress_out(p) for p in list_progress(db, user.id)],
        "statistics": {
            **stats,
            "attempts_by_level": [
                {**bucket, "level": _level_out(bucket["level"])} for bucket in stats["attempts_by_level"]
            ],
        },
        "recent_attempts": [_attempt_out(a) for a in attempts[:10]],
    }


@app.post("/api/user-progress", response_model=UserProgressUpdateResponse)
def update_user_progress(
    payload: UserProgressCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    level = _require_level(db, payload.level_id)
    outcome = record_level_result(db, user_id=user.id, level=level, score=payload.score, max_score=payload.max_score)
    db.commit()
    return {
        "user_progress": _progress_out(outcome.progress),
        "next_level_unlocked": _progress_out(outcome.next_level_progress) if outcome.next_level_progress else None,
        "achievements": outcome.achievements,
    }


@app.post("/api/generate-questions", response_model=GenerateQuestionsResponse)
def generate_questions(
    payload: GenerateQuestionsRequest,
    response: Response,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    if payload.level_id is not None:
        _require_level(db, payload.level_id)

    logger.info(
        "Generate questions request received (topic=%r, difficulty=%s, question_count=%s, level_id=%s, by=%s)",
        payload.topic,
        payload.difficulty,
        payload.question_count,
        payload.level_id,
        admin.id,
    )
    try:
        questions = service.generate_questions(
            topic=payload.topic,
            difficulty=payload.difficulty,
            question_count=payload.question_count,
        )
    except QuestionGenerationError as exc:
        logger.error("Question generation failed: %s", exc)
        raise AppError.internal("Failed to generate questions with AI") from exc
    except ExternalServiceError as exc:
        raise AppError.external_api("The AI question service is unavailable") from exc

    if payload.level_id is None:
        return {"message": "Questions generated successfully", "questions": questions}

    quiz = persist_generated_quiz(
        db,
        topic=payload.topic,
        difficulty=payload.difficulty,
        level_id=payload.level_id,
        question_type=payload.question_type,
        questions=questions,
    )
    db.commit()
    logger.info("Generated quiz persisted (quiz_id=%s, questions=%s)", quiz.id, len(questions))
    response.status_code = 201
    return {
        "message": "Questions generated and quiz created successfully",
        "questions": questions,
        "quiz": _quiz_out(_load_quiz(db, quiz.id), reveal_answers=True),
    }
