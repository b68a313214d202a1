import dataclasses

import pytest

from bible_quiz.config import Settings


def test_bcrypt_rounds_are_raised_to_twelve_outside_test(monkeypatch):
    monkeypatch.setenv("BCRYPT_ROUNDS", "4")
    monkeypatch.setenv("APP_ENV", "production")
    assert Settings().bcrypt_rounds == 12

    monkeypatch.setenv("APP_ENV", "test")
    assert Settings().bcrypt_rounds == 4


def test_settings_are_read_only(monkeypatch):
    monkeypatch.setenv("APP_ENV", "Production")
    monkeypatch.setenv("ADMIN_EMAILS", " Boss@Example.com ,, ")
    config = Settings()

    assert config.is_production
    assert config.log_level == "INFO"
    assert config.is_admin_email("boss@example.com")
    with pytest.raises(dataclasses.FrozenInstanceError):
        config.environment = "development"
