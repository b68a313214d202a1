from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from bible_quiz.models import QuestionType


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


NAME_PATTERN = r"^[A-Za-zÀ-ÿ\s]+$"


class RegisterRequest(CamelModel):
    name: str = Field(min_length=2, max_length=100, pattern=NAME_PATTERN)
    email: EmailStr
    password: str = Field(min_length=6, max_length=100)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: str) -> str:
        if len(value.strip()) < 2:
            raise ValueError("Name must have at least 2 characters")
        return value.strip()


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=1)


class UserOut(CamelModel):
    id: int
    name: str
    email: str
    is_admin: bool = False


class AuthResponse(CamelModel):
    message: str
    user: UserOut


class MessageResponse(CamelModel):
    message: str


class LevelCreate(CamelModel):
    name: str = Field(min_length=1, max_length=100)
    description: str = Field(default="", max_length=500)
    difficulty: int = Field(ge=1, le=10)
    min_score: float = Field(default=0, ge=0, le=100)


class LevelOut(CamelModel):
    id: int
    name: str
    description: str
    difficulty: int
    min_score: float


class LevelWithCountOut(LevelOut):
    quiz_count: int = 0


class AnswerIn(CamelModel):
    answer_text: str = Field(min_length=1, max_length=500)
    is_correct: bool = False


class QuestionIn(CamelModel):
    question_text: str = Field(min_length=1, max_length=1000)
    question_type: QuestionType = QuestionType.MULTIPLE_CHOICE
    difficulty: int = Field(default=1, ge=1, le=5)
    bible_verse: Optional[str] = Field(default=None, max_length=200)
    explanation: Optional[str] = Field(default=None, max_length=1000)
    answers: List[AnswerIn] = Field(min_length=2, max_length=6)

    @model_validator(mode="after")
    def correct_answer_count(self):
        correct = sum(1 for a in self.answers if a.is_correct)
        if self.question_type == QuestionType.FILL_BLANK:
            if correct < 1:
                raise ValueError("Fill-in-the-blank questions need at least one accepted answer")
        elif correct != 1:
            raise ValueError("There must be exactly one correct answer")
        if self.question_type == QuestionType.TRUE_FALSE and len(self.answers) != 2:
            raise ValueError("True/false questions must have exactly two answers")
        return self


class QuizCreate(CamelModel):
    title: str = Field(min_length=1, max_length=200)
    description: str = Field(default="", max_length=1000)
    level_id: int
    is_active: bool = True
    questions: List[QuestionIn] = Field(default_factory=list)


class QuizUpdate(CamelModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    level_id: Optional[int] = None
    is_active: Optional[bool] = None


class AnswerOut(CamelModel):
    id: int
    answer_text: str
    is_correct: Optional[bool] = None


class QuestionOut(CamelModel):
    id: int
    question_text: str
    question_type: QuestionType
    difficulty: int
    bible_verse: Optional[str] = None
    explanation: Optional[str] = None
    answers: List[AnswerOut]


class QuizSummaryOut(CamelModel):
    id: int
    title: str
    description: str
    level_id: int
    is_active: bool
    created_at: datetime
    level: LevelOut
    question_count: int = 0


class QuizOut(QuizSummaryOut):
    questions: List[QuestionOut]


class PaginationOut(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int


class QuizListResponse(CamelModel):
    quizzes: List[QuizSummaryOut]
    pagination: PaginationOut


class SubmittedAnswer(CamelModel):
    question_id: int
    answer_id: int


class QuizAttemptCreate(CamelModel):
    quiz_id: int
    answers: List[SubmittedAnswer]
    time_spent: int = Field(default=0, ge=0)


class QuizAttemptOut(CamelModel):
    id: int
    user_id: int
    quiz_id: int
    score: int
    correct_answers: int
    total_questions: int
    time_spent: int
    completed_at: datetime
    quiz_title: str = ""
    level: Optional[LevelOut] = None


class AttemptResults(CamelModel):
    score: int
    correct_answers: int
    total_questions: int
    percentage: int


class QuizAttemptResponse(CamelModel):
    attempt: QuizAttemptOut
    results: AttemptResults


class UserProgressCreate(CamelModel):
    level_id: int
    score: int = Field(ge=0)
    max_score: int = Field(ge=1)

    @model_validator(mode="after")
    def score_within_max(self):
        if self.score > self.max_score:
            raise ValueError("score cannot exceed maxScore")
        return self


class UserProgressOut(CamelModel):
    id: int
    user_id: int
    level_id: int
    best_score: int
    best_percentage: float
    is_unlocked: bool
    attempts_count: int
    last_attempt_at: Optional[datetime] = None
    level: LevelOut


class AchievementsOut(CamelModel):
    level_completed: bool
    perfect_score: bool
    first_attempt: bool
    next_level_unlocked: bool


class UserProgressUpdateResponse(CamelModel):
    user_progress: UserProgressOut
    next_level_unlocked: Optional[UserProgressOut] = None
    achievements: AchievementsOut


class LevelStatisticsOut(CamelModel):
    level: LevelOut
    attempt_count: int
    total_score: int
    total_possible: int
    best_score: int
    average_score: float


class ProgressStatisticsOut(CamelModel):
    total_attempts: int
    total_score: int
    total_possible_score: int
    average_score: float
    attempts_by_level: List[LevelStatisticsOut]


class UserProgressResponse(CamelModel):
    user_progress: List[UserProgressOut]
    statistics: ProgressStatisticsOut
    recent_attempts: List[QuizAttemptOut]


class GenerateQuestionsRequest(CamelModel):
    topic: str = Field(min_length=1, max_length=200)
    difficulty: int = Field(ge=1, le=5)
    question_count: int = Field(default=5, ge=1, le=20)
    question_type: QuestionType = QuestionType.MULTIPLE_CHOICE
    level_id: Optional[int] = None

    @field_validator("topic")
    @classmethod
    def topic_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("topic must not be blank")
        return value.strip()


class GeneratedAnswer(CamelModel):
    answer_text: str = Field(min_length=1)
    is_correct: bool


class GeneratedQuestion(CamelModel):
    question_text: str = Field(min_length=1)
    bible_verse: Optional[str] = None
    difficulty: int = Field(ge=1, le=5)
    explanation: Optional[str] = None
    answers: List[GeneratedAnswer] = Field(min_length=2)

    @model_validator(mode="after")
    def exactly_one_correct(self):
        if sum(1 for a in self.answers if a.is_correct) != 1:
            raise ValueError("Generated question must have exactly one correct answer")
        return self


class GeneratedQuestionSet(CamelModel):
    questions: List[GeneratedQuestion] = Field(min_length=1)


class GenerateQuestionsResponse(CamelModel):
    message: str
    questions: List[GeneratedQuestion]
    quiz: Optional[QuizOut] = None
