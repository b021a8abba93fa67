"""Tests for asset hashing, change detection and JSON validation."""

from __future__ import annotations

import hashlib

import pytest

from flexbuild.exceptions import AssetValidationError, ErrorKind
from flexbuild.filesystem.asset_meta import AssetRecord
from flexbuild.filesystem.asset_scanner import LocalAsset
from flexbuild.services.asset_service import (
    changed_assets,
    content_hash,
    deleted_records,
    is_json_asset,
    new_content_hasher,
    validate_json_assets,
)


def _local(path: str, data: bytes) -> LocalAsset:
    return LocalAsset(path=path, data=data, content_hash=content_hash(data))


class TestContentHash:
    def test_prefixes_byte_count(self) -> None:
        expected = hashlib.sha1(b"12|test content").hexdigest()
        assert content_hash(b"test content") == expected

    def test_is_forty_hex_chars(self) -> None:
        digest = content_hash(b"test content")
        assert len(digest) == 40
        assert set(digest) <= set("0123456789abcdef")

    def test_deterministic(self) -> None:
        assert content_hash(b"same") == content_hash(b"same")

    def test_empty_differs_from_one_byte(self) -> None:
        assert content_hash(b"") == hashlib.sha1(b"0|").hexdigest()
        assert content_hash(b"") != content_hash(b"a")

    def test_byte_count_uses_bytes_not_characters(self) -> None:
        data = "héllo".encode()
        assert content_hash(data) == hashlib.sha1(b"6|" + data).hexdigest()

    def test_incremental_hasher_matches_one_shot(self) -> None:
        data = b"x" * 200_000
        hasher = new_content_hasher(len(data))
        for start in range(0, len(data), 65536):
            hasher.update(data[start : start + 65536])
        assert hasher.hexdigest() == content_hash(data)


class TestIsJsonAsset:
    @pytest.mark.parametrize("path", ["test.json", "test.JSON", "content/config.json"])
    def test_json_paths(self, path: str) -> None:
        assert is_json_asset(path)

    @pytest.mark.parametrize("path", ["test.png", "test.jpg", "test.txt", "test.svg", "json"])
    def test_other_paths(self, path: str) -> None:
        assert not is_json_asset(path)


class TestChangedAssets:
    def test_detects_modified_and_new(self) -> None:
        existing = [
            AssetRecord("file1.txt", content_hash(b"one")),
            AssetRecord("file2.txt", content_hash(b"two")),
        ]
        local = [
            _local("file1.txt", b"one"),
            _local("file2.txt", b"two changed"),
            _local("file3.txt", b"three"),
        ]
        changed = changed_assets(existing, local)
        assert [a.path for a in changed] == ["file2.txt", "file3.txt"]

    def test_without_metadata_everything_is_changed(self) -> None:
        local = [_local("new-file.txt", b"data")]
        assert changed_assets([], local) == local

    def test_unchanged_tree_yields_nothing(self) -> None:
        local = [_local("a.txt", b"a"), _local("b/c.png", b"c")]
        existing = [AssetRecord(a.path, a.content_hash) for a in local]
        assert changed_assets(existing, local) == []


class TestDeletedRecords:
    def test_records_missing_locally(self) -> None:
        existing = [AssetRecord("A", "h1"), AssetRecord("B", "h2")]
        assert deleted_records(existing, ["A", "C"]) == [AssetRecord("B", "h2")]

    def test_nothing_tracked_nothing_deleted(self) -> None:
        assert deleted_records([], ["A"]) == []


class TestValidateJsonAssets:
    def test_accepts_valid_json_and_ignores_other_files(self) -> None:
        validate_json_assets(
            [
                _local("translations.json", b'{"a": 1}'),
                _local("logo.png", b"\x89PNG not json"),
            ]
        )

    def test_rejects_invalid_json_naming_path(self) -> None:
        with pytest.raises(AssetValidationError) as excinfo:
            validate_json_assets(
                [
                    _local("ok.json", b"[]"),
                    _local("content/broken.json", b"{not json"),
                ]
            )
        assert excinfo.value.path == "content/broken.json"
        assert excinfo.value.kind is ErrorKind.VALIDATION
        assert str(excinfo.value).startswith("Invalid JSON in content/broken.json: ")

    @pytest.mark.parametrize(
        ("data", "token"),
        [(b'{"x": NaN}', "NaN"), (b"[Infinity]", "Infinity"), (b"-Infinity", "-Infinity")],
    )
    def test_rejects_non_standard_constants(self, data: bytes, token: str) -> None:
        with pytest.raises(AssetValidationError) as excinfo:
            validate_json_assets([_local("config.json", data)])
        assert excinfo.value.path == "config.json"
        assert token in excinfo.value.reason

    def test_rejects_non_utf8_json(self) -> None:
        with pytest.raises(AssetValidationError, match="bad.json"):
            validate_json_assets([_local("bad.json", b"\xff\xfe")])
