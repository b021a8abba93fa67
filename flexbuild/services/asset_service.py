"""Asset content hashing, change detection and JSON validation."""

from __future__ import annotations

import hashlib
import json
import logging
from typing import TYPE_CHECKING

from flexbuild.exceptions import AssetValidationError

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from hashlib import _Hash

    from flexbuild.filesystem.asset_meta import AssetRecord
    from flexbuild.filesystem.asset_scanner import LocalAsset

logger = logging.getLogger(__name__)


def new_content_hasher(size: int) -> _Hash:
    """Start a content hash for a payload of ``size`` bytes.

    The server hashes ``"<byte count>|"`` followed by the payload with SHA-1;
    feed the payload to the returned object with ``update``.
    """
    sha = hashlib.sha1(usedforsecurity=False)
    sha.update(f"{size}|".encode("ascii"))
    return sha


def content_hash(data: bytes) -> str:
    """Compute the server-compatible content hash of ``data``."""
    sha = new_content_hasher(len(data))
    sha.update(data)
    return sha.hexdigest()


def _reject_constant(token: str) -> None:
    raise ValueError(f"{token} is not valid JSON")


def is_json_asset(path: str) -> bool:
    return path.lower().endswith(".json")


def validate_json_assets(assets: Iterable[LocalAsset]) -> None:
    """Raise ``AssetValidationError`` for the first JSON asset that does not parse."""
    for asset in assets:
        if not is_json_asset(asset.path):
            continue
        try:
            json.loads(asset.data.decode("utf-8"), parse_constant=_reject_constant)
        except ValueError as exc:
            raise AssetValidationError(asset.path, str(exc)) from exc


def changed_assets(
    existing: Sequence[AssetRecord],
    local_assets: Sequence[LocalAsset],
) -> list[LocalAsset]:
    """Local assets that are new or whose hash differs from the recorded one.

    With no existing records every local asset counts as changed.
    """
    hash_by_path = {record.path: record.content_hash for record in existing}
    changed = [
        asset for asset in local_assets if hash_by_path.get(asset.path) != asset.content_hash
    ]
    logger.debug("%d of %d local assets changed", len(changed), len(local_assets))
    return changed


def deleted_records(
    existing: Sequence[AssetRecord],
    local_paths: Iterable[str],
) -> list[AssetRecord]:
    """Recorded assets whose path is no longer present locally."""
    present = set(local_paths)
    return [record for record in existing if record.path not in present]
