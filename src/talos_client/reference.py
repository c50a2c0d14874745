"""
Container image reference parsing.

Follows the Docker distribution reference grammar:
``[domain/]path[:tag][@digest]`` with familiar names normalised to
``docker.io/library/...``. Bare identifiers and bare digests are digest
references and never name:tag references.
"""

import re
from dataclasses import dataclass
from typing import Optional

from .exceptions import ReferenceParseError

DEFAULT_DOMAIN = "docker.io"
LEGACY_DEFAULT_DOMAIN = "index.docker.io"
OFFICIAL_REPO_PREFIX = "library/"
NAME_TOTAL_LENGTH_MAX = 255

_DOMAIN_COMPONENT = r"(?:[a-zA-Z0-9]|[a-zA-Z0-9][a-zA-Z0-9-]*[a-zA-Z0-9])"
_DOMAIN_RE = re.compile(rf"{_DOMAIN_COMPONENT}(?:\.{_DOMAIN_COMPONENT})*(?::[0-9]+)?", re.ASCII)
_PATH_COMPONENT_RE = re.compile(r"[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*", re.ASCII)
_TAG_RE = re.compile(r"\w[\w.-]{0,127}", re.ASCII)
_DIGEST_RE = re.compile(r"[A-Za-z][A-Za-z0-9]*(?:[-_+.][A-Za-z][A-Za-z0-9]*)*:[0-9a-fA-F]{32,}", re.ASCII)
_IDENTIFIER_RE = re.compile(r"[a-f0-9]{64}", re.ASCII)
# Digests with a registered algorithm; anything else before ":" is a repository name.
_CANONICAL_DIGEST_RE = re.compile(r"sha256:[a-f0-9]{64}|sha384:[a-f0-9]{96}|sha512:[a-f0-9]{128}", re.ASCII)


@dataclass(frozen=True)
class ImageReference:
    """A named and tagged image reference, optionally pinned by digest."""

    name: str
    tag: str
    digest: Optional[str] = None

    @property
    def domain(self) -> str:
        return self.name.split("/", 1)[0]

    def with_tag(self, tag: str) -> "ImageReference":
        """Return a copy carrying ``tag``; the name and digest are kept."""
        if not _TAG_RE.fullmatch(tag):
            raise ReferenceParseError(f"invalid tag format: {tag!r}")
        return ImageReference(name=self.name, tag=tag, digest=self.digest)

    def __str__(self) -> str:
        value = f"{self.name}:{self.tag}"
        if self.digest:
            value += f"@{self.digest}"
        return value


def _split_domain(name: str) -> tuple:
    first, sep, remainder = name.partition("/")
    if not sep or (
        "." not in first and ":" not in first and first != "localhost" and first.lower() == first
    ):
        domain, remainder = DEFAULT_DOMAIN, name
    else:
        domain = first
    if domain == LEGACY_DEFAULT_DOMAIN:
        domain = DEFAULT_DOMAIN
    if domain == DEFAULT_DOMAIN and "/" not in remainder:
        remainder = OFFICIAL_REPO_PREFIX + remainder
    return domain, remainder


def _normalize_name(raw: str) -> str:
    if _IDENTIFIER_RE.fullmatch(raw):
        raise ReferenceParseError(
            f"invalid repository name ({raw}), cannot specify 64-byte hexadecimal strings"
        )
    domain, remainder = _split_domain(raw)
    if remainder.lower() != remainder:
        raise ReferenceParseError(f"repository name must be lowercase: {raw!r}")
    if not _DOMAIN_RE.fullmatch(domain):
        raise ReferenceParseError(f"invalid reference format: bad domain {domain!r}")
    for component in remainder.split("/"):
        if not _PATH_COMPONENT_RE.fullmatch(component):
            raise ReferenceParseError(f"invalid reference format: {raw!r}")

    name = f"{domain}/{remainder}"
    if len(name) > NAME_TOTAL_LENGTH_MAX:
        raise ReferenceParseError(
            f"repository name must not be more than {NAME_TOTAL_LENGTH_MAX} characters"
        )
    return name


def parse_reference(image: str) -> ImageReference:
    """
    Parse ``image`` into a named, tagged reference.

    Raises:
        ReferenceParseError: if the string is empty, malformed, digest-only
            or carries no tag.
    """
    if not image:
        raise ReferenceParseError("invalid reference format: repository name must have at least one component")
    if _IDENTIFIER_RE.fullmatch(image) or _CANONICAL_DIGEST_RE.fullmatch(image):
        raise ReferenceParseError(f"{image} is a digest-only reference, not a name:tag reference")

    remainder, _, digest = image.partition("@")
    if digest and not _DIGEST_RE.fullmatch(digest):
        raise ReferenceParseError(f"invalid digest format: {digest!r}")

    tag = None
    colon = remainder.rfind(":")
    if colon > remainder.rfind("/"):
        remainder, tag = remainder[:colon], remainder[colon + 1 :]
        if not _TAG_RE.fullmatch(tag):
            raise ReferenceParseError(f"invalid tag format: {tag!r}")

    name = _normalize_name(remainder)
    if tag is None:
        raise ReferenceParseError(f"{image} is not a name:tag reference")
    return ImageReference(name=name, tag=tag, digest=digest or None)
