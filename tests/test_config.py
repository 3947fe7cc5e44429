import pytest
from pydantic import ValidationError

from app.core.config import Settings


def _settings(**overrides) -> Settings:
    values = {
        "DATABASE_URL": "sqlite+aiosqlite:///./test.db",
        "JWT_SECRET": "test-secret",
    }
    values.update(overrides)
    return Settings(**values)


def _settings_with_cors(value: str) -> Settings:
    return _settings(CORS_ORIGINS=value)


def test_cors_origin_list_supports_comma_separated_values() -> None:
    settings = _settings_with_cors("http://localhost:5173,http://localhost:3000")
    assert settings.cors_origin_list() == [
        "http://localhost:5173",
        "http://localhost:3000",
    ]


def test_cors_origin_list_normalizes_quotes_and_trailing_slashes() -> None:
    settings = _settings_with_cors("'http://localhost:5173/'")
    assert settings.cors_origin_list() == ["http://localhost:5173"]


def test_cors_origin_list_supports_json_array_format() -> None:
    settings = _settings_with_cors(
        '["http://localhost:5173", "http://127.0.0.1:5173/"]'
    )
    assert settings.cors_origin_list() == [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]


@pytest.mark.parametrize(
    "raw",
    ["postgres://u:p@db:5432/social", "postgresql://u:p@db:5432/social"],
)
def test_database_url_uses_async_driver(raw: str) -> None:
    assert _settings(DATABASE_URL=raw).database_url == "postgresql+asyncpg://u:p@db:5432/social"


def test_database_url_keeps_explicit_driver() -> None:
    url = "postgresql+psycopg://u:p@db/social"
    assert _settings(DATABASE_URL=url).database_url == url


def test_log_level_is_normalized() -> None:
    assert _settings(LOG_LEVEL=" debug ").log_level == "DEBUG"


def test_log_level_rejects_unknown_values() -> None:
    with pytest.raises(ValidationError):
        _settings(LOG_LEVEL="chatty")


def test_store_and_realtime_defaults() -> None:
    settings = _settings()
    assert settings.store_retry_attempts >= 1
    assert settings.store_deadline_seconds > 0
    assert settings.realtime_outbox_size >= 1


def test_legacy_relay_can_be_disabled() -> None:
    assert _settings(REALTIME_LEGACY_RELAY="false").realtime_legacy_relay is False
