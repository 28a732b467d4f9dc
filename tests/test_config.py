"""Unit tests for EngineSettings."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from sales_funnel.config import EngineSettings


class TestEngineSettingsDefaults:
    """Tests for defaults and validation."""

    def test_defaults(self) -> None:
        """Defaults match the dashboard behaviour."""
        settings = EngineSettings()
        assert settings.page_size == 50
        assert settings.store_backend == "memory"
        assert settings.timeout_seconds == 30
        assert settings.currency_symbol == "R$"
        assert settings.queue_path is None

    def test_supabase_requires_credentials(self) -> None:
        """The supabase backend needs url and key."""
        with pytest.raises(ValidationError, match="supabase_url"):
            EngineSettings(store_backend="supabase")

    def test_page_size_positive(self) -> None:
        """Page size must be at least 1."""
        with pytest.raises(ValidationError):
            EngineSettings(page_size=0)


class TestEngineSettingsFromYaml:
    """Tests for from_yaml."""

    def test_flat(self, tmp_path: Path) -> None:
        """Flat keys are read directly."""
        path = tmp_path / "settings.yaml"
        path.write_text("page_size: 20\ncurrency_symbol: US$\n")
        settings = EngineSettings.from_yaml(path)
        assert settings.page_size == 20
        assert settings.currency_symbol == "US$"

    def test_nested_store_section(self, tmp_path: Path) -> None:
        """store: section configures the backend."""
        path = tmp_path / "settings.yaml"
        path.write_text(
            "store:\n"
            "  backend: supabase\n"
            "  url: https://example.supabase.co\n"
            "  key: secret\n"
            "  timeout_seconds: 5\n"
            "  queue_path: queue.db\n"
        )
        settings = EngineSettings.from_yaml(path)
        assert settings.store_backend == "supabase"
        assert settings.supabase_url == "https://example.supabase.co"
        assert settings.timeout_seconds == 5
        assert settings.queue_path == Path("queue.db")

    def test_empty_file(self, tmp_path: Path) -> None:
        """An empty file gives defaults."""
        path = tmp_path / "settings.yaml"
        path.write_text("")
        assert EngineSettings.from_yaml(path) == EngineSettings()


class TestEngineSettingsFromEnv:
    """Tests for from_env."""

    def test_reads_prefixed_variables(self) -> None:
        """SALES_FUNNEL_* variables override defaults."""
        env = {
            "SALES_FUNNEL_PAGE_SIZE": "25",
            "SALES_FUNNEL_STORE_BACKEND": "supabase",
            "SALES_FUNNEL_SUPABASE_URL": "https://example.supabase.co",
            "SALES_FUNNEL_SUPABASE_KEY": "secret",
            "SALES_FUNNEL_QUEUE_PATH": "",
        }
        settings = EngineSettings.from_env(env)
        assert settings.page_size == 25
        assert settings.store_backend == "supabase"
        assert settings.queue_path is None

    def test_process_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Without an explicit mapping os.environ is used."""
        monkeypatch.setenv("SALES_FUNNEL_CURRENCY_SYMBOL", "EUR")
        assert EngineSettings.from_env().currency_symbol == "EUR"
