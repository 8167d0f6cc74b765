import pytest
from pydantic import ValidationError

from scribe.config.settings import SecurityConfig


def test_security_config_requires_jwt_secret(monkeypatch):
    monkeypatch.delenv("JWT_SECRET", raising=False)

    with pytest.raises(ValidationError):
        SecurityConfig(_env_file=None)


def test_security_config_rejects_short_jwt_secret(monkeypatch):
    monkeypatch.setenv("JWT_SECRET", "short")

    with pytest.raises(ValidationError):
        SecurityConfig(_env_file=None)


def test_security_config_reads_jwt_secret_from_environment(monkeypatch):
    monkeypatch.setenv("JWT_SECRET", "a-long-enough-signing-secret")

    config = SecurityConfig(_env_file=None)

    assert config.jwt_secret_key.get_secret_value() == "a-long-enough-signing-secret"
    assert config.jwt_algorithm == "HS256"
