"""Release matrix models.

Pydantic schemas validate data at the ingestion boundaries (upstream API
records and the persisted matrix document). Frozen dataclasses carry
resolved data through the rest of the pipeline.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType

from pydantic import BaseModel, ConfigDict, Field

from firebird_images.matrix.versions import Version

# Upstream API schemas


class UpstreamAssetSchema(BaseModel):
    """A downloadable file attached to an upstream release."""

    model_config = ConfigDict(extra="ignore")

    browser_download_url: str


class UpstreamReleaseSchema(BaseModel):
    """An upstream release record (subset of the GitHub API fields)."""

    model_config = ConfigDict(extra="ignore")

    tag_name: str
    prerelease: bool = False
    assets: list[UpstreamAssetSchema] = Field(default_factory=list)

    @property
    def download_urls(self) -> list[str]:
        return [a.browser_download_url for a in self.assets]


# Persisted matrix schemas


class DownloadDescriptorSchema(BaseModel):
    """Serialized download descriptor."""

    model_config = ConfigDict(extra="forbid")

    url: str
    sha256: str = Field(pattern=r"^[0-9a-f]{64}$")


class MatrixEntrySchema(BaseModel):
    """Serialized matrix entry: one upstream release and its tags."""

    model_config = ConfigDict(extra="forbid")

    version: str
    releases: dict[str, DownloadDescriptorSchema] = Field(default_factory=dict)
    tags: dict[str, list[str]] = Field(default_factory=dict)


# Resolved data


@dataclass(frozen=True)
class DownloadDescriptor:
    """Where to download a release tarball and its expected checksum."""

    url: str
    sha256: str


@dataclass(frozen=True)
class ReleaseAsset:
    """A stable upstream release with its per-architecture downloads.

    Attributes:
        version: Release version.
        descriptors: Architecture to download descriptor, in
            architecture order. May be empty.
    """

    version: Version
    descriptors: Mapping[str, DownloadDescriptor]

    def __post_init__(self) -> None:
        # Freeze the mapping so the asset stays immutable once resolved
        object.__setattr__(
            self, "descriptors", MappingProxyType(dict(self.descriptors))
        )

    @property
    def major_version(self) -> int:
        return self.version.major

    @property
    def architectures(self) -> list[str]:
        return list(self.descriptors)


@dataclass(frozen=True)
class MatrixEntry:
    """A release asset and its tag set (variant to ordered tags)."""

    asset: ReleaseAsset
    tags: Mapping[str, tuple[str, ...]]

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "tags",
            MappingProxyType({v: tuple(t) for v, t in self.tags.items()}),
        )

    @property
    def version(self) -> Version:
        return self.asset.version

    @property
    def variants(self) -> list[str]:
        return list(self.tags)


@dataclass(frozen=True)
class BuildTarget:
    """A concrete (version, variant) image to act upon.

    Attributes:
        asset: Release asset providing downloads.
        variant: Distribution variant.
        tags: Tags for this variant only; the first tag is primary.
    """

    asset: ReleaseAsset
    variant: str
    tags: tuple[str, ...]

    @property
    def version(self) -> Version:
        return self.asset.version

    @property
    def primary_tag(self) -> str:
        return self.tags[0]

    @property
    def label(self) -> str:
        return f"{self.version}-{self.variant}"


__all__ = [
    "BuildTarget",
    "DownloadDescriptor",
    "DownloadDescriptorSchema",
    "MatrixEntry",
    "MatrixEntrySchema",
    "ReleaseAsset",
    "UpstreamAssetSchema",
    "UpstreamReleaseSchema",
]
