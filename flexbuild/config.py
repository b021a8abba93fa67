"""Client configuration loaded from the environment and ``.env.edn``."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import edn_format
from pydantic import Field
from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = "https://flex-build-api.sharetribe.com/v1/build-api"
ENV_EDN_FILE = ".env.edn"


def load_edn_env_file(path: Path) -> dict[str, str]:
    """Read string entries from an EDN env file; unreadable files yield nothing."""
    if not path.is_file():
        return {}
    try:
        data = edn_format.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.warning("Ignoring unparseable %s: %s", path, exc)
        return {}
    if not isinstance(data, Mapping):
        return {}
    return {k: v for k, v in data.items() if isinstance(k, str) and isinstance(v, str)}


class EdnEnvFileSettingsSource(PydanticBaseSettingsSource):
    """Settings source for ``.env.edn`` in the current working directory.

    Keys are the same names as the environment variables, e.g.
    ``{"FLEX_API_BASE_URL" "http://localhost:8088/v1/build-api"}``.
    """

    def __init__(self, settings_cls: type[BaseSettings], env_file: Path) -> None:
        super().__init__(settings_cls)
        self._values = load_edn_env_file(env_file)
        self._prefix = settings_cls.model_config.get("env_prefix", "")

    def get_field_value(self, field: FieldInfo, field_name: str) -> tuple[Any, str, bool]:
        return self._values.get(f"{self._prefix}{field_name}".upper()), field_name, False

    def __call__(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        for field_name, field in self.settings_cls.model_fields.items():
            value, key, _ = self.get_field_value(field, field_name)
            if value is not None:
                data[key] = value
        return data


class Settings(BaseSettings):
    """Build API client settings.

    Resolved once at startup and passed to the HTTP client; nothing else reads
    the environment.
    """

    model_config = SettingsConfigDict(
        env_prefix="FLEX_",
        extra="ignore",
    )

    api_base_url: str = DEFAULT_API_BASE_URL
    auth_file: Path = Path.home() / ".config" / "flex-cli" / "auth.edn"
    http_timeout: float = Field(default=60.0, gt=0)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            EdnEnvFileSettingsSource(settings_cls, Path.cwd() / ENV_EDN_FILE),
        )

    def config_map(self) -> dict[str, str]:
        return {"api-base-url": self.api_base_url}
