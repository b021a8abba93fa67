"""Wire schemas for the asset endpoints.

The API uses namespaced, hyphenated keys (``data-raw``, ``content-hash``);
fields are declared with snake_case names and hyphenated aliases.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", coerce_numbers_to_str=True)


class PulledAsset(_WireModel):
    """One asset in a JSON pull response, payload base64-encoded."""

    path: str
    data_raw: str = Field(alias="data-raw")
    content_hash: str | None = Field(default=None, alias="content-hash")


class PullMeta(_WireModel):
    version: str | None = None
    aliased_version: str | None = Field(default=None, alias="aliased-version")

    @property
    def resolved_version(self) -> str | None:
        return self.version or self.aliased_version


class PullResponse(_WireModel):
    data: list[PulledAsset] = Field(default_factory=list)
    meta: PullMeta = Field(default_factory=PullMeta)


class StagedAsset(_WireModel):
    staging_id: str = Field(alias="staging-id")


class StageResponse(_WireModel):
    data: StagedAsset


class AssetHash(_WireModel):
    path: str
    content_hash: str = Field(alias="content-hash")


class AssetMeta(_WireModel):
    assets: list[AssetHash] = Field(default_factory=list)


class PushedVersion(_WireModel):
    version: str
    asset_meta: AssetMeta = Field(alias="asset-meta")


class PushResponse(_WireModel):
    data: PushedVersion
