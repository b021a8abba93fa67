"""Asset endpoints: pulling bundles, staging uploads and push transactions.

A pull can come back in two shapes, chosen by the server from the ``Accept``
header:

- JSON: ``{"data": [{"path", "data-raw", "content-hash"?}], "meta": {"version"}}``
  with base64 payloads inline.
- ``application/zip``: an ``asset-meta.edn`` entry at the archive root (same
  shape as the local metadata file) plus one entry per asset under ``assets/``.

Both are normalized to a ``PullBundle`` so the pull pipeline never sees the
wire format.
"""

from __future__ import annotations

import base64
import binascii
import functools
import io
import logging
import tempfile
import zipfile
from dataclasses import dataclass, field
from enum import StrEnum
from typing import IO, TYPE_CHECKING, Any, TypeVar

from pydantic import BaseModel, ValidationError

from flexbuild.exceptions import ApiError, AssetInvalidContentError
from flexbuild.filesystem.asset_meta import AssetMetadata, AssetRecord, parse_asset_metadata
from flexbuild.schemas.assets import PullResponse, PushResponse, StageResponse

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    import httpx

    from flexbuild.api.client import BuildApiClient, MultipartField

logger = logging.getLogger(__name__)

PULL_ACCEPT = "application/zip, application/json;q=0.9"
ZIP_CONTENT_TYPES = frozenset({"application/zip", "application/x-zip-compressed"})
ARCHIVE_META_ENTRY = "asset-meta.edn"
ARCHIVE_ASSETS_PREFIX = "assets/"
CHUNK_SIZE = 64 * 1024
INVALID_RESPONSE = "invalid-response"

_M = TypeVar("_M", bound=BaseModel)


def _invalid_response(message: str) -> ApiError:
    return ApiError(INVALID_RESPONSE, message, 0)


def _parse(model: type[_M], payload: Any) -> _M:
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise _invalid_response(
            f"Unexpected {model.__name__} shape ({exc.error_count()} validation errors)"
        ) from exc


class AssetOp(StrEnum):
    UPSERT = "upsert"
    DELETE = "delete"


@dataclass(frozen=True)
class AssetOperation:
    """One operation in a push transaction.

    Upserts carry either inline ``data`` or the ``staging_id`` of a previously
    staged upload; deletes carry only the path.
    """

    path: str
    op: AssetOp
    data: bytes | None = field(default=None, repr=False)
    staging_id: str | None = None

    @classmethod
    def upsert(
        cls, path: str, *, data: bytes | None = None, staging_id: str | None = None
    ) -> AssetOperation:
        if (data is None) == (staging_id is None):
            raise ValueError("upsert needs exactly one of data or staging_id")
        return cls(path=path, op=AssetOp.UPSERT, data=data, staging_id=staging_id)

    @classmethod
    def delete(cls, path: str) -> AssetOperation:
        return cls(path=path, op=AssetOp.DELETE)


@dataclass(frozen=True)
class BundleAsset:
    """An asset delivered by a pull; ``open()`` returns its bytes as a stream."""

    path: str
    size: int
    content_hash: str | None
    opener: Callable[[], IO[bytes]] = field(repr=False, compare=False)

    def open(self) -> IO[bytes]:
        return self.opener()


class PullBundle:
    """A version plus the assets at that version."""

    def __init__(self, version: str, assets: list[BundleAsset]) -> None:
        self.version = version
        self.assets = assets

    def paths(self) -> set[str]:
        return {asset.path for asset in self.assets}

    def close(self) -> None:
        """Release resources held by the bundle."""

    def __enter__(self) -> PullBundle:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


class InlinePullBundle(PullBundle):
    """Bundle decoded from a JSON pull response."""

    @classmethod
    def from_response(cls, response: PullResponse) -> InlinePullBundle:
        version = response.meta.resolved_version
        if not version:
            raise _invalid_response("No version information in response")
        assets: list[BundleAsset] = []
        for item in response.data:
            try:
                data = base64.b64decode(item.data_raw, validate=True)
            except binascii.Error as exc:
                raise _invalid_response(f"Invalid base64 payload for {item.path}") from exc
            assets.append(
                BundleAsset(
                    path=item.path,
                    size=len(data),
                    content_hash=item.content_hash,
                    opener=functools.partial(io.BytesIO, data),
                )
            )
        return cls(version, assets)


class ArchivePullBundle(PullBundle):
    """Bundle backed by a downloaded zip archive spooled to a temporary file."""

    def __init__(
        self,
        version: str,
        assets: list[BundleAsset],
        archive: zipfile.ZipFile,
        spool: IO[bytes],
    ) -> None:
        super().__init__(version, assets)
        self._archive = archive
        self._spool = spool

    @classmethod
    def from_file(cls, spool: IO[bytes]) -> ArchivePullBundle:
        """Index the archive in ``spool``; takes ownership of the file."""
        try:
            archive = zipfile.ZipFile(spool)
        except zipfile.BadZipFile as exc:
            spool.close()
            raise _invalid_response(f"Invalid asset archive: {exc}") from exc

        try:
            metadata = parse_asset_metadata(archive.read(ARCHIVE_META_ENTRY).decode("utf-8"))
        except KeyError as exc:
            archive.close()
            spool.close()
            raise _invalid_response(f"Asset archive has no {ARCHIVE_META_ENTRY} entry") from exc
        except (ValueError, zipfile.BadZipFile) as exc:
            archive.close()
            spool.close()
            raise _invalid_response(f"Invalid asset archive metadata: {exc}") from exc

        hashes = metadata.hashes_by_path()
        assets: list[BundleAsset] = []
        for info in archive.infolist():
            if info.is_dir() or info.filename == ARCHIVE_META_ENTRY:
                continue
            if not info.filename.startswith(ARCHIVE_ASSETS_PREFIX):
                logger.debug("Ignoring archive entry %s", info.filename)
                continue
            path = info.filename[len(ARCHIVE_ASSETS_PREFIX) :]
            assets.append(
                BundleAsset(
                    path=path,
                    size=info.file_size,
                    content_hash=hashes.get(path),
                    opener=functools.partial(archive.open, info),
                )
            )
        return cls(metadata.version, assets, archive, spool)

    def close(self) -> None:
        self._archive.close()
        self._spool.close()


class AssetsApi:
    """Asset endpoints of the Build API."""

    def __init__(self, client: BuildApiClient) -> None:
        self.client = client

    def pull_bundle(
        self,
        marketplace: str,
        version: str | None = None,
        on_progress: Callable[[int], None] | None = None,
    ) -> PullBundle:
        """Fetch the assets at ``version``, or at the latest version if omitted.

        ``on_progress`` receives the cumulative number of bytes downloaded
        while an archive response is being received.
        """
        params = {"marketplace": marketplace}
        if version:
            params["version"] = version
        else:
            params["version-alias"] = "latest"

        with self.client.stream(
            "/assets/pull", params=params, headers={"Accept": PULL_ACCEPT}
        ) as response:
            content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
            if content_type in ZIP_CONTENT_TYPES:
                return ArchivePullBundle.from_file(_spool_body(response, on_progress))
            response.read()
            payload = self.client.parse_response(response)
        return InlinePullBundle.from_response(_parse(PullResponse, payload))

    def stage_asset(self, marketplace: str, data: bytes, filename: str) -> str:
        """Upload ``data`` for later reference in a push; returns the staging id."""
        try:
            payload = self.client.post_multipart(
                "/assets/stage", {"marketplace": marketplace}, [("file", data, filename)]
            )
        except ApiError as exc:
            if exc.code == AssetInvalidContentError.CODE:
                raise AssetInvalidContentError(filename, exc.message, exc.status) from exc
            raise
        return _parse(StageResponse, payload).data.staging_id

    def push_bundle(
        self,
        marketplace: str,
        current_version: str,
        operations: Sequence[AssetOperation],
    ) -> AssetMetadata:
        """Submit ``operations`` as one transaction based on ``current_version``.

        Returns the new version and the server's hashes for every asset in it.
        """
        fields: list[MultipartField] = [("current-version", current_version)]
        for i, operation in enumerate(operations):
            fields.append((f"path-{i}", operation.path))
            fields.append((f"op-{i}", operation.op.value))
            if operation.op is AssetOp.UPSERT:
                if operation.staging_id is not None:
                    fields.append((f"staging-id-{i}", operation.staging_id))
                elif operation.data is not None:
                    fields.append((f"data-raw-{i}", operation.data, operation.path))

        payload = self.client.post_multipart("/assets/push", {"marketplace": marketplace}, fields)
        pushed = _parse(PushResponse, payload).data
        return AssetMetadata(
            version=pushed.version,
            assets=tuple(
                AssetRecord(path=a.path, content_hash=a.content_hash)
                for a in pushed.asset_meta.assets
            ),
        )


def _spool_body(
    response: httpx.Response, on_progress: Callable[[int], None] | None
) -> IO[bytes]:
    spool = tempfile.TemporaryFile()
    try:
        downloaded = 0
        for chunk in response.iter_bytes(CHUNK_SIZE):
            spool.write(chunk)
            downloaded += len(chunk)
            if on_progress is not None:
                on_progress(downloaded)
        spool.seek(0)
    except BaseException:
        spool.close()
        raise
    return spool
