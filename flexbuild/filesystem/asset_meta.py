"""Local asset metadata stored in ``.flex-cli/asset-meta.edn``.

The file records the asset version the tree was last synced to and the
content hash of every asset at that version::

    {:version "3" :assets [{:path "a.png" :content-hash "9f0c..."}]}

Only the pull and push pipelines write it, and always as a whole.
"""

from __future__ import annotations

import logging
import os
import tempfile
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import edn_format

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

META_DIR = ".flex-cli"
META_FILE = "asset-meta.edn"
NIL_VERSION = "nil"

_VERSION = edn_format.Keyword("version")
_ALIASED_VERSION = edn_format.Keyword("aliased-version")
_ASSETS = edn_format.Keyword("assets")
_PATH = edn_format.Keyword("path")
_CONTENT_HASH = edn_format.Keyword("content-hash")


@dataclass(frozen=True)
class AssetRecord:
    """One tracked file: POSIX relative path and its content hash."""

    path: str
    content_hash: str


@dataclass(frozen=True)
class AssetMetadata:
    version: str
    assets: tuple[AssetRecord, ...] = field(default_factory=tuple)

    def hashes_by_path(self) -> dict[str, str]:
        return {record.path: record.content_hash for record in self.assets}


def metadata_path(root: Path) -> Path:
    return root / META_DIR / META_FILE


def parse_asset_metadata(text: str) -> AssetMetadata:
    """Parse the EDN form of asset metadata.

    Accepts ``:aliased-version`` in place of ``:version``, as found in
    archive-delivered bundles; integer versions are read as strings.  Raises ``ValueError`` on any malformed input.
    """
    data = edn_format.loads(text)
    if not isinstance(data, Mapping):
        raise ValueError("asset metadata must be an EDN map")
    version = data.get(_VERSION)
    if version is None:
        version = data.get(_ALIASED_VERSION)
    if isinstance(version, int) and not isinstance(version, bool):
        version = str(version)
    if not isinstance(version, str):
        raise ValueError("asset metadata has no version")

    entries = data.get(_ASSETS)
    if entries is None:
        entries = ()
    if isinstance(entries, str) or not isinstance(entries, Sequence):
        raise ValueError("asset metadata :assets must be a vector")

    records: list[AssetRecord] = []
    for entry in entries:
        if not isinstance(entry, Mapping):
            raise ValueError(f"malformed asset entry: {entry!r}")
        path = entry.get(_PATH)
        content_hash = entry.get(_CONTENT_HASH)
        if not isinstance(path, str) or not isinstance(content_hash, str):
            raise ValueError(f"malformed asset entry: {entry!r}")
        records.append(AssetRecord(path=path, content_hash=content_hash))
    return AssetMetadata(version=version, assets=tuple(records))


def dump_asset_metadata(metadata: AssetMetadata) -> str:
    assets = [
        {_PATH: record.path, _CONTENT_HASH: record.content_hash} for record in metadata.assets
    ]
    return edn_format.dumps({_VERSION: metadata.version, _ASSETS: assets})


def read_asset_metadata(root: Path) -> AssetMetadata | None:
    """Load metadata for the tree at ``root``.

    A missing or unparseable file means "no prior state" and returns None.
    """
    meta_path = metadata_path(root)
    if not meta_path.exists():
        return None
    try:
        return parse_asset_metadata(meta_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.warning("Ignoring unreadable asset metadata %s: %s", meta_path, exc)
        return None


def write_asset_metadata(root: Path, metadata: AssetMetadata) -> None:
    """Replace the metadata file with ``metadata`` in one rename."""
    meta_path = metadata_path(root)
    meta_path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=meta_path.parent, prefix=".asset-meta-", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(dump_asset_metadata(metadata))
        os.replace(tmp_name, meta_path)
    except BaseException:
        os.unlink(tmp_name)
        raise
    logger.debug(
        "Wrote asset metadata for version %s (%d assets)",
        metadata.version,
        len(metadata.assets),
    )
