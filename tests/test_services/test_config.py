"""Tests for client configuration."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from flexbuild.config import DEFAULT_API_BASE_URL, Settings, load_edn_env_file


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Run every test from an empty directory with no FLEX_ variables set."""
    for name in ("FLEX_API_BASE_URL", "FLEX_AUTH_FILE", "FLEX_HTTP_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


class TestSettings:
    def test_default_settings(self) -> None:
        s = Settings()
        assert s.api_base_url == DEFAULT_API_BASE_URL
        assert s.http_timeout == 60.0
        assert s.auth_file == Path.home() / ".config" / "flex-cli" / "auth.edn"

    def test_custom_settings(self, tmp_path: Path) -> None:
        s = Settings(api_base_url="http://localhost:8088/v1/build-api", auth_file=tmp_path / "a")
        assert s.api_base_url == "http://localhost:8088/v1/build-api"
        assert s.auth_file == tmp_path / "a"

    def test_settings_from_fixture(self, test_settings: Settings) -> None:
        assert test_settings.api_base_url == "https://build.test/v1/build-api"
        assert test_settings.auth_file.name == "auth.edn"

    def test_environment_overrides_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("FLEX_API_BASE_URL", "http://env.test/api")
        monkeypatch.setenv("FLEX_HTTP_TIMEOUT", "5")
        s = Settings()
        assert s.api_base_url == "http://env.test/api"
        assert s.http_timeout == 5.0

    def test_non_positive_timeout_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Settings(http_timeout=0)

    def test_config_map(self) -> None:
        assert Settings(api_base_url="http://x.test").config_map() == {
            "api-base-url": "http://x.test"
        }


class TestEdnEnvFile:
    def test_env_edn_in_working_directory_is_read(self, tmp_path: Path) -> None:
        (tmp_path / ".env.edn").write_text(
            '{"FLEX_API_BASE_URL" "http://localhost:8088/v1/build-api"}', encoding="utf-8"
        )
        assert Settings().api_base_url == "http://localhost:8088/v1/build-api"

    def test_environment_wins_over_env_edn(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        (tmp_path / ".env.edn").write_text('{"FLEX_API_BASE_URL" "http://edn.test"}')
        monkeypatch.setenv("FLEX_API_BASE_URL", "http://env.test")
        assert Settings().api_base_url == "http://env.test"

    def test_init_wins_over_env_edn(self, tmp_path: Path) -> None:
        (tmp_path / ".env.edn").write_text('{"FLEX_API_BASE_URL" "http://edn.test"}')
        assert Settings(api_base_url="http://init.test").api_base_url == "http://init.test"

    def test_unparseable_file_is_ignored(self, tmp_path: Path) -> None:
        (tmp_path / ".env.edn").write_text("{unbalanced")
        assert Settings().api_base_url == DEFAULT_API_BASE_URL

    def test_non_string_entries_are_dropped(self, tmp_path: Path) -> None:
        path = tmp_path / "vars.edn"
        path.write_text('{"FLEX_API_BASE_URL" "http://a.test" "FLEX_HTTP_TIMEOUT" 5 :k "v"}')
        assert load_edn_env_file(path) == {"FLEX_API_BASE_URL": "http://a.test"}

    def test_missing_file_yields_nothing(self, tmp_path: Path) -> None:
        assert load_edn_env_file(tmp_path / "nope.edn") == {}
