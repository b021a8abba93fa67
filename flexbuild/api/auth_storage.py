"""API key storage in ``auth.edn`` (``{:api-key "..."}``)."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING

import edn_format

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_API_KEY = edn_format.Keyword("api-key")


@dataclass(frozen=True)
class AuthData:
    api_key: str


def read_auth(auth_file: Path) -> AuthData | None:
    """Return the stored credentials, or None if the file is missing or invalid."""
    if not auth_file.exists():
        return None
    try:
        parsed = edn_format.loads(auth_file.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.warning("Ignoring unreadable auth file %s: %s", auth_file, exc)
        return None
    if not isinstance(parsed, Mapping):
        return None
    api_key = parsed.get(_API_KEY)
    if not isinstance(api_key, str):
        return None
    return AuthData(api_key=api_key)


def write_auth(auth_file: Path, data: AuthData) -> None:
    auth_file.parent.mkdir(parents=True, exist_ok=True)
    auth_file.write_text(edn_format.dumps({_API_KEY: data.api_key}), encoding="utf-8")


def clear_auth(auth_file: Path) -> None:
    auth_file.unlink(missing_ok=True)
