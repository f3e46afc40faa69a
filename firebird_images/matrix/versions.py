"""Release version parsing and comparison.

Versions are compared purely numerically on their dotted components
(major.minor.patch[.build]).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

# Release tags: v<major>.<minor>...; full parsing happens in Version.from_tag
STABLE_TAG_PATTERN = re.compile(r"^v\d+\.\d+")

VERSION_PATTERN = re.compile(r"^(\d+)\.(\d+)\.(\d+)(?:\.(\d+))?$")


class ParseError(Exception):
    """Raised when a version string or tag cannot be parsed."""

    def __init__(self, value: str, code: str = "parse_error") -> None:
        super().__init__(f"Malformed version: {value!r}")
        self.value = value
        self.code = code


@dataclass(frozen=True, order=True)
class Version:
    """A numeric release version.

    Attributes:
        parts: Numeric components, compared element-wise.
        text: Original dotted form, used for tags and serialization.
    """

    parts: tuple[int, ...]
    text: str = field(compare=False)

    @classmethod
    def parse(cls, value: str) -> Version:
        """Parse a dotted version such as '5.0.1'.

        Raises:
            ParseError: If the value is not a dotted numeric version.
        """
        match = VERSION_PATTERN.match(value)
        if match is None:
            raise ParseError(value)
        parts = tuple(int(g) for g in match.groups() if g is not None)
        return cls(parts=parts, text=value)

    @classmethod
    def from_tag(cls, tag: str) -> Version:
        """Parse a release tag such as 'v5.0.1'."""
        if not tag.startswith("v"):
            raise ParseError(tag)
        return cls.parse(tag[1:])

    @property
    def major(self) -> int:
        return self.parts[0]

    def __str__(self) -> str:
        return self.text


def is_stable_tag(tag: str) -> bool:
    """Return True if tag follows the stable release naming convention."""
    return STABLE_TAG_PATTERN.match(tag) is not None


__all__ = ["ParseError", "STABLE_TAG_PATTERN", "Version", "is_stable_tag"]
