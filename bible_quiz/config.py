import os
from dataclasses import dataclass, field


def _csv(value: str) -> frozenset[str]:
    return frozenset(x.strip().lower() for x in value.split(",") if x.strip())


def _bcrypt_rounds() -> int:
    rounds = int(os.getenv("BCRYPT_ROUNDS", "12"))
    # cost below 12 is only accepted for test runs
    if os.getenv("APP_ENV", "development").lower() != "test":
        rounds = max(rounds, 12)
    return rounds


@dataclass(frozen=True)
class Settings:
    database_url: str = field(default_factory=lambda: os.getenv("DATABASE_URL", "sqlite:///./bible_quiz.db"))
    openai_api_key: str | None = field(default_factory=lambda: os.getenv("OPENAI_API_KEY"))
    openai_model: str = field(default_factory=lambda: os.getenv("OPENAI_MODEL", "gpt-5"))
    openai_timeout_seconds: float = field(default_factory=lambda: float(os.getenv("OPENAI_TIMEOUT_SECONDS", "30")))
    environment: str = field(default_factory=lambda: os.getenv("APP_ENV", "development").lower())
    log_level_override: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", ""))
    bcrypt_rounds: int = field(default_factory=_bcrypt_rounds)
    session_ttl_days: int = field(default_factory=lambda: int(os.getenv("SESSION_TTL_DAYS", "7")))
    admin_emails: frozenset[str] = field(default_factory=lambda: _csv(os.getenv("ADMIN_EMAILS", "")))

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def log_level(self) -> str:
        if self.log_level_override:
            return self.log_level_override.upper()
        return "INFO" if self.is_production else "DEBUG"

    def is_admin_email(self, email: str) -> bool:
        return email.strip().lower() in self.admin_emails


settings = Settings()
