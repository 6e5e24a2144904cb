from vortex.config import DEFAULT_PLATFORM_CHAIN, Settings, parse_platform_chain
from vortex.llm.schemas import BackendKind


def test_from_env_defaults() -> None:
    settings = Settings.from_env()

    assert settings.database_url == ""
    assert not settings.has_database
    assert settings.platform_credentials == {}
    assert settings.platform_chain == DEFAULT_PLATFORM_CHAIN
    assert settings.backend_timeout_s == 60.0
    assert settings.db_pool_max == 5


def test_from_env_reads_keys_and_overrides(monkeypatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "postgresql://localhost/vortex")
    monkeypatch.setenv("GEMINI_API_KEY", "  g-key  ")
    monkeypatch.setenv("DEEPSEEK_API_KEY", "")
    monkeypatch.setenv("VORTEX_BACKEND_TIMEOUT_S", "15")
    monkeypatch.setenv("VORTEX_DB_POOL_MAX", "not-a-number")

    settings = Settings.from_env()

    assert settings.has_database
    assert settings.credential_for(BackendKind.GEMINI) == "g-key"
    assert settings.credential_for(BackendKind.DEEPSEEK) == ""
    assert settings.backend_timeout_s == 15.0
    assert settings.db_pool_max == 5


def test_parse_platform_chain() -> None:
    assert parse_platform_chain("") == DEFAULT_PLATFORM_CHAIN
    assert parse_platform_chain(" Anthropic, gemini ,bogus,,anthropic") == (
        BackendKind.ANTHROPIC,
        BackendKind.GEMINI,
    )


def test_default_chain_priority() -> None:
    assert DEFAULT_PLATFORM_CHAIN == (
        BackendKind.GEMINI,
        BackendKind.MISTRAL,
        BackendKind.ANTHROPIC,
        BackendKind.DEEPSEEK,
    )
