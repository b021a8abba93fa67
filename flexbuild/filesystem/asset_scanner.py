"""Walk an asset directory and read its files."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from flexbuild.filesystem.asset_meta import META_DIR
from flexbuild.services.asset_service import content_hash

IGNORED_NAMES = frozenset({META_DIR, ".DS_Store"})


@dataclass(frozen=True)
class LocalAsset:
    path: str
    data: bytes
    content_hash: str


def _walk_files(root: Path) -> list[Path]:
    if not root.is_dir():
        raise NotADirectoryError(f"{root} is not a directory")

    def _raise(exc: OSError) -> None:
        raise exc

    found: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(root, onerror=_raise):
        dirnames[:] = sorted(d for d in dirnames if d not in IGNORED_NAMES)
        for filename in filenames:
            if filename in IGNORED_NAMES:
                continue
            full = Path(dirpath) / filename
            if full.is_file():
                found.append(full)
    return sorted(found, key=lambda p: p.relative_to(root).as_posix())


def list_local_paths(root: Path) -> list[str]:
    """Relative POSIX paths of all asset files under ``root``, sorted."""
    return [full.relative_to(root).as_posix() for full in _walk_files(root)]


def scan_local_assets(root: Path) -> list[LocalAsset]:
    """Read every asset file under ``root`` with its content hash, sorted by path."""
    assets: list[LocalAsset] = []
    for full in _walk_files(root):
        data = full.read_bytes()
        assets.append(
            LocalAsset(
                path=full.relative_to(root).as_posix(),
                data=data,
                content_hash=content_hash(data),
            )
        )
    return assets
