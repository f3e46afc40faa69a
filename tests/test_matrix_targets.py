"""Tests for build target enumeration."""

import pytest

from firebird_images.matrix.models import DownloadDescriptor, MatrixEntry, ReleaseAsset
from firebird_images.matrix.targets import NoMatchError, enumerate_targets
from firebird_images.matrix.versions import Version

SHA = "0" * 64


def entry(version: str, tags: dict, archs=("amd64",)) -> MatrixEntry:
    descriptors = {
        arch: DownloadDescriptor(
            url=f"https://example.com/{version}.{arch}.tar.gz", sha256=SHA
        )
        for arch in archs
    }
    asset = ReleaseAsset(version=Version.parse(version), descriptors=descriptors)
    return MatrixEntry(asset=asset, tags=tags)


@pytest.fixture
def entries():
    """Three releases across two major versions and two variants."""
    return [
        entry(
            "5.0.2",
            {
                "bookworm": ["latest", "5", "5.0.2"],
                "jammy": ["jammy", "5-jammy", "5.0.2-jammy"],
            },
            archs=("amd64", "arm64"),
        ),
        entry("5.0.1", {"bookworm": ["5.0.1"], "jammy": ["5.0.1-jammy"]}),
        entry(
            "4.0.3",
            {"bookworm": ["4", "4.0.3"], "jammy": ["4-jammy", "4.0.3-jammy"]},
        ),
    ]


class TestEnumerateTargets:
    """Tests for enumerate_targets function."""

    def test_no_filters(self, entries):
        """Should return every (version, variant) pair in matrix order."""
        targets = enumerate_targets(entries)

        assert [t.label for t in targets] == [
            "5.0.2-bookworm",
            "5.0.2-jammy",
            "5.0.1-bookworm",
            "5.0.1-jammy",
            "4.0.3-bookworm",
            "4.0.3-jammy",
        ]

    def test_version_prefix(self, entries):
        """Prefix '5' selects the 5.x releases, newest first."""
        targets = enumerate_targets(entries, version_prefix="5", variant="bookworm")

        assert [str(t.version) for t in targets] == ["5.0.2", "5.0.1"]

    def test_exact_version(self, entries):
        """A full version selects only that release."""
        targets = enumerate_targets(entries, version_prefix="5.0.1")

        assert {str(t.version) for t in targets} == {"5.0.1"}
        assert len(targets) == 2

    def test_variant_filter(self, entries):
        """Should keep only the requested variant."""
        targets = enumerate_targets(entries, variant="jammy")

        assert all(t.variant == "jammy" for t in targets)
        assert len(targets) == 3

    def test_tags_scoped_to_variant(self, entries):
        """Each target carries only its own variant's tags."""
        target = enumerate_targets(entries, version_prefix="5.0.2", variant="jammy")[0]

        assert target.tags == ("jammy", "5-jammy", "5.0.2-jammy")
        assert target.primary_tag == "jammy"

    def test_no_match_version(self, entries):
        """Should raise NoMatchError for an unknown version."""
        with pytest.raises(NoMatchError) as exc_info:
            enumerate_targets(entries, version_prefix="6")

        assert "version '6'" in str(exc_info.value)
        assert exc_info.value.code == "no_match"

    def test_no_match_variant(self, entries):
        """Should raise NoMatchError for an unknown variant."""
        with pytest.raises(NoMatchError, match="variant 'alpine'"):
            enumerate_targets(entries, variant="alpine")

    def test_empty_matrix(self):
        """Should raise NoMatchError when the matrix is empty."""
        with pytest.raises(NoMatchError):
            enumerate_targets([])

    def test_skips_assets_without_downloads(self, entries):
        """Releases with no descriptors are not buildable."""
        entries.append(entry("3.0.9", {"bookworm": ["3", "3.0.9"]}, archs=()))

        targets = enumerate_targets(entries, variant="bookworm")

        assert "3.0.9" not in {str(t.version) for t in targets}

    def test_only_unbuildable_raises(self):
        """Should raise NoMatchError if every match lacks downloads."""
        with pytest.raises(NoMatchError):
            enumerate_targets([entry("3.0.9", {"bookworm": ["3.0.9"]}, archs=())])
