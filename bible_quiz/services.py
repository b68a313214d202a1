import json
import logging

from openai import APIError, AuthenticationError, OpenAI
from pydantic import ValidationError
from sqlalchemy.orm import Session

from bible_quiz.config import settings
from bible_quiz.models import Answer, Question, QuestionType, Quiz
from bible_quiz.schemas import GeneratedQuestion, GeneratedQuestionSet

logger = logging.getLogger(__name__)


class QuestionGenerationError(RuntimeError):
    """The model output could not be turned into questions, or generation is not configured."""


class ExternalServiceError(RuntimeError):
    """The completion API itself failed (network, timeout, HTTP error)."""


SYSTEM_INSTRUCTIONS = (
    "You are a Bible expert who writes accurate, educational quiz questions about biblical themes. "
    "Always answer with valid JSON."
)

LEVEL_GUIDANCE = (
    "Suggested themes per difficulty:\n"
    "- 1-2: basic stories, main characters, well-known events\n"
    "- 3: teachings of Jesus, parables, miracles\n"
    "- 4-5: theology, prophecy, historical details, genealogies"
)


class QuestionGenerator:
    def __init__(
        self,
        api_key: str | None = None,
        *,
        model: str | None = None,
        timeout: float | None = None,
        logger: logging.Logger | None = None,
    ):
        self.api_key = api_key if api_key is not None else settings.openai_api_key
        self.model = model or settings.openai_model
        self.logger = logger or logging.getLogger(__name__)
        # user-triggered call: bounded timeout, failures surface immediately
        self.client = (
            OpenAI(
                api_key=self.api_key,
                timeout=timeout or settings.openai_timeout_seconds,
                max_retries=0,
            )
            if self.api_key
            else None
        )

    @staticmethod
    def build_prompt(*, topic: str, difficulty: int, question_count: int) -> str:
        return (
            f"Generate {question_count} Bible questions about the topic \"{topic}\" "
            f"with difficulty {difficulty} (1-5, where 1 is beginner and 5 is expert).\n\n"
            "Each question must:\n"
            "- Be based on specific Bible verses\n"
            "- Include the Bible reference\n"
            "- Have 4 alternatives with exactly one correct\n"
            "- Include a short explanation of the correct answer\n"
            "- Fit the requested difficulty\n\n"
            "Response format (JSON):\n"
            "{\n"
            '  "questions": [\n'
            "    {\n"
            '      "questionText": "Question?",\n'
            '      "bibleVerse": "Book chapter:verse",\n'
            f'      "difficulty": {difficulty},\n'
            '      "explanation": "Why the correct answer is correct",\n'
            '      "answers": [\n'
            '        {"answerText": "Alternative A", "isCorrect": false},\n'
            '        {"answerText": "Alternative B", "isCorrect": true},\n'
            '        {"answerText": "Alternative C", "isCorrect": false},\n'
            '        {"answerText": "Alternative D", "isCorrect": false}\n'
            "      ]\n"
            "    }\n"
            "  ]\n"
            "}\n\n"
            f"{LEVEL_GUIDANCE}\n\n"
            "Reply with the JSON ONLY, no additional text."
        )

    def generate_questions(self, *, topic: str, difficulty: int, question_count: int) -> list[GeneratedQuestion]:
        if not self.client:
            raise QuestionGenerationError("OPENAI_API_KEY is required to generate questions")

        prompt = self.build_prompt(topic=topic, difficulty=difficulty, question_count=question_count)
        self.logger.info(
            "Generating questions via OpenAI (topic=%r, difficulty=%s, question_count=%s, model=%s)",
            topic,
            difficulty,
            question_count,
            self.model,
        )

        try:
            response = self.client.responses.create(
                model=self.model,
                instructions=SYSTEM_INSTRUCTIONS,
                input=prompt,
            )
        except AuthenticationError as exc:
            raise QuestionGenerationError("Invalid OpenAI API key") from exc
        except APIError as exc:
            self.logger.warning("OpenAI request failed: %s", exc)
            raise ExternalServiceError("Question generation service is unavailable") from exc

        text = response.output_text or ""
        self.logger.info("OpenAI generation response length=%s", len(text))
        questions = self.parse_questions(text)
        self.logger.info("Parsed %s generated questions", len(questions))
        return questions

    def parse_questions(self, text: str) -> list[GeneratedQuestion]:
        try:
            payload = json.loads(self._strip_code_fence(text))
        except json.JSONDecodeError as exc:
            self.logger.warning("Model returned invalid JSON (%s). Raw response: %r", exc.msg, text)
            raise QuestionGenerationError("Invalid response from the question generator") from exc

        try:
            return GeneratedQuestionSet.model_validate(payload).questions
        except ValidationError as exc:
            self.logger.warning(
                "Model JSON did not match the question schema (%s errors). Raw response: %r",
                exc.error_count(),
                text,
            )
            raise QuestionGenerationError("Invalid response from the question generator") from exc

    @staticmethod
    def _strip_code_fence(text: str) -> str:
        normalized = (text or "").strip()
        if normalized.startswith("```"):
            normalized = normalized.strip("`").strip()
            if normalized.startswith("json"):
                normalized = normalized[4:]
        return normalized.strip()


def persist_generated_quiz(
    db: Session,
    *,
    topic: str,
    difficulty: int,
    level_id: int,
    question_type: QuestionType,
    questions: list[GeneratedQuestion],
) -> Quiz:
    quiz = Quiz(
        title=f"Quiz: {topic}",
        description=f"Automatically generated quiz about {topic} (difficulty {difficulty})",
        level_id=level_id,
    )
    for q in questions:
        quiz.questions.append(
            Question(
                question_text=q.question_text,
                question_type=question_type,
                difficulty=q.difficulty or difficulty,
                bible_verse=q.bible_verse,
                explanation=q.explanation,
                answers=[Answer(answer_text=a.answer_text, is_correct=a.is_correct) for a in q.answers],
            )
        )
    db.add(quiz)
    db.flush()
    return quiz
