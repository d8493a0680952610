"""
Tests for configuration loading.
"""

from __future__ import annotations

from datetime import time

import pytest

from comprawatch.core.config.loader import ConfigError, load_app_config, require_database_url
from comprawatch.core.config.models import AppConfig


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("CRON_SERVER_PORT", raising=False)


class TestLoadAppConfig:
    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_app_config(tmp_path / "absent.yaml")

        assert config.database.url is None
        assert config.server.port == 3002
        assert config.scheduler.time_of_day == time(0, 0)
        assert config.scheduler.timezone == "America/Montevideo"
        assert config.ingestion.batch_size == 200
        assert config.rates.fallback_rates["USD"] == 40.0

    def test_file_values(self, tmp_path):
        path = tmp_path / "app.yaml"
        path.write_text(
            "database:\n"
            "  url: sqlite:///data/test.db\n"
            "ingestion:\n"
            "  start_period: '2024-06'\n"
            "  concurrency: 5\n"
            "scheduler:\n"
            "  time_of_day: '02:30'\n"
            "rates:\n"
            "  fallback_rates:\n"
            "    usd: 41.5\n",
            encoding="utf-8",
        )

        config = load_app_config(path)

        assert config.database.url == "sqlite:///data/test.db"
        assert config.ingestion.start_period == "2024-06"
        assert config.ingestion.concurrency == 5
        assert config.scheduler.time_of_day == time(2, 30)
        assert config.rates.fallback_rates == {"USD": 41.5}

    def test_environment_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "app.yaml"
        path.write_text("database:\n  url: sqlite:///file.db\nserver:\n  port: 8000\n", encoding="utf-8")
        monkeypatch.setenv("DATABASE_URL", "postgresql+psycopg://localhost/comprawatch")
        monkeypatch.setenv("CRON_SERVER_PORT", "3100")

        config = load_app_config(path)

        assert config.database.url == "postgresql+psycopg://localhost/comprawatch"
        assert config.server.port == 3100

    def test_placeholder_expansion(self, tmp_path, monkeypatch):
        path = tmp_path / "app.yaml"
        path.write_text("database:\n  url: ${DATABASE_URL:-}\nfeed:\n  base_url: ${FEED_URL:-https://feed.test}\n")
        monkeypatch.setenv("FEED_URL", "https://mirror.test/rss")

        config = load_app_config(path)

        assert config.database.url is None
        assert config.feed.base_url == "https://mirror.test/rss"

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "app.yaml"
        path.write_text("database: [unclosed\n", encoding="utf-8")

        with pytest.raises(ConfigError) as exc_info:
            load_app_config(path)

        assert exc_info.value.path == path

    @pytest.mark.parametrize(
        "content",
        [
            "ingestion:\n  start_period: '2025-13'\n",
            "ingestion:\n  concurrency: 0\n",
            "rates:\n  fallback_rates:\n    USD: 0\n",
            "server:\n  port: 70000\n",
        ],
    )
    def test_invalid_values(self, tmp_path, content):
        path = tmp_path / "app.yaml"
        path.write_text(content, encoding="utf-8")

        with pytest.raises(ConfigError) as exc_info:
            load_app_config(path)

        assert exc_info.value.details


class TestRequireDatabaseUrl:
    def test_missing(self):
        with pytest.raises(ConfigError):
            require_database_url(AppConfig())

    def test_present(self):
        config = AppConfig.model_validate({"database": {"url": "sqlite:///x.db"}})

        assert require_database_url(config) == "sqlite:///x.db"
