"""Asset pull and push pipelines.

Both pipelines scan the local tree, compare it with the last-known metadata,
talk to the server (or stop early when there is nothing to do) and finally
persist the new metadata.  The metadata file is always the last write and is
only written after the server round-trip and every file write succeeded, so a
failed run leaves it exactly as it was.
"""

from __future__ import annotations

import logging
import zipfile
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from flexbuild.api.assets import CHUNK_SIZE, INVALID_RESPONSE, AssetOperation
from flexbuild.exceptions import (
    ApiError,
    AssetInvalidContentError,
    AssetStagingError,
    NotADirectoryPathError,
)
from flexbuild.filesystem.asset_meta import (
    NIL_VERSION,
    AssetMetadata,
    AssetRecord,
    read_asset_metadata,
    write_asset_metadata,
)
from flexbuild.filesystem.asset_scanner import list_local_paths, scan_local_assets
from flexbuild.services.asset_service import (
    changed_assets,
    deleted_records,
    is_json_asset,
    new_content_hasher,
    validate_json_assets,
)

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from flexbuild.api.assets import AssetsApi, BundleAsset

logger = logging.getLogger(__name__)


class SyncStatus(StrEnum):
    UP_TO_DATE = "up-to-date"
    PULLED = "pulled"
    PUSHED = "pushed"


@dataclass
class PullResult:
    status: SyncStatus
    version: str
    written: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


@dataclass
class PushResult:
    status: SyncStatus
    version: str
    upserted: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    staged: list[str] = field(default_factory=list)


def _safe_target(root: Path, rel_path: str) -> Path | None:
    """Resolve a server-provided path within ``root``, returning None on traversal."""
    target = (root / rel_path).resolve()
    if target == root or not target.is_relative_to(root):
        return None
    return target


def _write_asset(target: Path, asset: BundleAsset) -> str:
    """Stream ``asset`` to ``target`` and return its content hash."""
    target.parent.mkdir(parents=True, exist_ok=True)
    hasher = new_content_hasher(asset.size)
    with asset.open() as src, open(target, "wb") as dst:
        for chunk in iter(lambda: src.read(CHUNK_SIZE), b""):
            dst.write(chunk)
            hasher.update(chunk)
    return asset.content_hash or hasher.hexdigest()


def _delete_local(root: Path, rel_path: str) -> bool:
    """Delete a local asset and any directories it leaves empty."""
    target = _safe_target(root, rel_path)
    if target is None or not target.is_file():
        return False
    target.unlink()
    parent = target.parent
    while parent != root and parent.is_relative_to(root) and not any(parent.iterdir()):
        parent.rmdir()
        parent = parent.parent
    return True


def pull_assets(
    api: AssetsApi,
    marketplace: str,
    path: Path,
    *,
    version: str | None = None,
    prune: bool = False,
    on_progress: Callable[[int], None] | None = None,
) -> PullResult:
    """Bring the tree at ``path`` to the remote ``version`` (latest if omitted).

    With ``prune`` local files absent from the remote bundle are deleted.
    Nothing is written when the local metadata already names the remote
    version and nothing was pruned.
    """
    if not path.exists():
        path.mkdir(parents=True)
    if not path.is_dir():
        raise NotADirectoryPathError(str(path))
    root = path.resolve()

    # Snapshot before anything is written so pruning only sees pre-pull files.
    local_paths = list_local_paths(root) if prune else []
    current = read_asset_metadata(root)

    with api.pull_bundle(marketplace, version, on_progress=on_progress) as bundle:
        deleted: list[str] = []
        if prune:
            remote_paths = bundle.paths()
            for rel_path in local_paths:
                if rel_path not in remote_paths and _delete_local(root, rel_path):
                    logger.info("Pruned %s", rel_path)
                    deleted.append(rel_path)

        if current is not None and current.version == bundle.version and not deleted:
            logger.info("Assets already at version %s", bundle.version)
            return PullResult(status=SyncStatus.UP_TO_DATE, version=bundle.version)

        result = PullResult(status=SyncStatus.PULLED, version=bundle.version, deleted=deleted)
        records: list[AssetRecord] = []
        for asset in bundle.assets:
            target = _safe_target(root, asset.path)
            if target is None:
                logger.warning("Skipping asset with unsafe path: %s", asset.path)
                result.skipped.append(asset.path)
                continue
            try:
                asset_hash = _write_asset(target, asset)
            except zipfile.BadZipFile as exc:
                raise ApiError(INVALID_RESPONSE, f"Corrupt archive entry {asset.path}", 0) from exc
            records.append(AssetRecord(path=asset.path, content_hash=asset_hash))
            result.written.append(asset.path)

    write_asset_metadata(root, AssetMetadata(version=result.version, assets=tuple(records)))
    logger.info("Pulled version %s (%d assets)", result.version, len(records))
    return result


def push_assets(
    api: AssetsApi,
    marketplace: str,
    path: Path,
    *,
    prune: bool = False,
    echo: Callable[[str], None] | None = None,
) -> PushResult:
    """Upload new and changed assets under ``path`` as a new remote version.

    Non-JSON assets are staged one at a time first; JSON assets travel inline.
    With ``prune`` tracked assets missing locally are deleted remotely.  On
    success the local metadata is replaced by the server's view of the new
    version.
    """
    if not path.is_dir():
        raise NotADirectoryPathError(str(path), f"{path} is not a valid directory")

    current = read_asset_metadata(path)
    base_version = current.version if current is not None else NIL_VERSION
    existing = current.assets if current is not None else ()

    local_assets = scan_local_assets(path)
    validate_json_assets(local_assets)

    changed = changed_assets(existing, local_assets)
    deletions = deleted_records(existing, (a.path for a in local_assets)) if prune else []
    if not changed and not deletions:
        logger.info("No local changes against version %s", base_version)
        return PushResult(status=SyncStatus.UP_TO_DATE, version=base_version)

    if changed and echo is not None:
        echo(f"Uploading changed assets: {', '.join(a.path for a in changed)}")

    staged: dict[str, str] = {}
    stageable = [a for a in changed if not is_json_asset(a.path)]
    if stageable and echo is not None:
        echo(f"Staging assets: {', '.join(a.path for a in stageable)}")
    for asset in stageable:
        try:
            staged[asset.path] = api.stage_asset(marketplace, asset.data, asset.path)
        except AssetInvalidContentError as exc:
            raise AssetStagingError(asset.path, exc.detail) from exc
        logger.debug("Staged %s as %s", asset.path, staged[asset.path])

    operations = [
        AssetOperation.upsert(asset.path, staging_id=staged[asset.path])
        if asset.path in staged
        else AssetOperation.upsert(asset.path, data=asset.data)
        for asset in changed
    ]
    operations.extend(AssetOperation.delete(record.path) for record in deletions)

    pushed = api.push_bundle(marketplace, base_version, operations)
    write_asset_metadata(path, pushed)
    logger.info("Pushed version %s (base %s)", pushed.version, base_version)
    return PushResult(
        status=SyncStatus.PUSHED,
        version=pushed.version,
        upserted=[a.path for a in changed],
        deleted=[r.path for r in deletions],
        staged=list(staged),
    )
