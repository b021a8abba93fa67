"""Shared test fixtures for the Build API client."""

from __future__ import annotations

import functools
import io
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import pytest

from flexbuild.api.assets import AssetOp, BundleAsset, InlinePullBundle
from flexbuild.config import Settings
from flexbuild.exceptions import ApiError, AssetInvalidContentError
from flexbuild.filesystem.asset_meta import NIL_VERSION, AssetMetadata, AssetRecord
from flexbuild.services.asset_service import content_hash

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from pathlib import Path

    from flexbuild.api.assets import AssetOperation, PullBundle

TEST_BASE_URL = "https://build.test/v1/build-api"


@dataclass
class FakeAssetsApi:
    """In-memory stand-in for ``AssetsApi`` with server-side version checks.

    Every call is recorded so tests can assert which requests were made.
    """

    version: str = NIL_VERSION
    assets: dict[str, bytes] = field(default_factory=dict)
    invalid_content: dict[str, str] = field(default_factory=dict)
    push_error: Exception | None = None
    pull_error: Exception | None = None
    pull_calls: list[tuple[str, str | None]] = field(default_factory=list)
    stage_calls: list[tuple[str, str]] = field(default_factory=list)
    push_calls: list[tuple[str, str, list[AssetOperation]]] = field(default_factory=list)
    staged: dict[str, bytes] = field(default_factory=dict)
    omit_hashes: bool = False

    @property
    def call_count(self) -> int:
        return len(self.pull_calls) + len(self.stage_calls) + len(self.push_calls)

    def publish(self, version: str, assets: dict[str, bytes]) -> None:
        """Simulate a server-side change made by someone else."""
        self.version = version
        self.assets = dict(assets)

    def pull_bundle(
        self,
        marketplace: str,
        version: str | None = None,
        on_progress: Callable[[int], None] | None = None,
    ) -> PullBundle:
        self.pull_calls.append((marketplace, version))
        if self.pull_error is not None:
            raise self.pull_error
        bundle_assets = [
            BundleAsset(
                path=path,
                size=len(data),
                content_hash=None if self.omit_hashes else content_hash(data),
                opener=functools.partial(io.BytesIO, data),
            )
            for path, data in sorted(self.assets.items())
        ]
        return InlinePullBundle(self.version, bundle_assets)

    def stage_asset(self, marketplace: str, data: bytes, filename: str) -> str:
        self.stage_calls.append((marketplace, filename))
        if filename in self.invalid_content:
            raise AssetInvalidContentError(filename, self.invalid_content[filename], 400)
        staging_id = f"staging-{len(self.stage_calls)}"
        self.staged[staging_id] = data
        return staging_id

    def push_bundle(
        self,
        marketplace: str,
        current_version: str,
        operations: Sequence[AssetOperation],
    ) -> AssetMetadata:
        self.push_calls.append((marketplace, current_version, list(operations)))
        if self.push_error is not None:
            raise self.push_error
        if current_version != self.version:
            raise ApiError(
                "asset-version-conflict",
                f"Current version is {self.version}, got {current_version}",
                409,
            )
        for operation in operations:
            if operation.op is AssetOp.DELETE:
                self.assets.pop(operation.path, None)
            elif operation.staging_id is not None:
                self.assets[operation.path] = self.staged.pop(operation.staging_id)
            else:
                assert operation.data is not None
                self.assets[operation.path] = operation.data
        self.version = "1" if self.version == NIL_VERSION else str(int(self.version) + 1)
        return AssetMetadata(
            version=self.version,
            assets=tuple(
                AssetRecord(path=path, content_hash=content_hash(data))
                for path, data in sorted(self.assets.items())
            ),
        )


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Settings pointing at a fake API host and a temporary auth file."""
    return Settings(
        api_base_url=TEST_BASE_URL,
        auth_file=tmp_path / "config" / "auth.edn",
    )


@pytest.fixture
def assets_dir(tmp_path: Path) -> Path:
    """Create an empty asset directory."""
    path = tmp_path / "assets"
    path.mkdir()
    return path


@pytest.fixture
def fake_api() -> FakeAssetsApi:
    return FakeAssetsApi()
