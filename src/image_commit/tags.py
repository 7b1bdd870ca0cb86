"""Parsing image names and binding them to images."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional

from .digest import validate_digest
from .errors import InvalidReferenceError
from .storage import Image, Store

DEFAULT_TAG = "latest"
NAME_TOTAL_LENGTH_MAX = 255

_DOMAIN_COMPONENT = r"(?:[a-zA-Z0-9]|[a-zA-Z0-9][a-zA-Z0-9-]*[a-zA-Z0-9])"
_DOMAIN = rf"{_DOMAIN_COMPONENT}(?:\.{_DOMAIN_COMPONENT})*(?::[0-9]+)?"
_PATH_COMPONENT = r"[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*"
_NAME = rf"(?:{_DOMAIN}/)?{_PATH_COMPONENT}(?:/{_PATH_COMPONENT})*"
_TAG = r"[\w][\w.-]{0,127}"
_DIGEST = r"[A-Za-z][A-Za-z0-9]*(?:[-_+.][A-Za-z][A-Za-z0-9]*)*:[0-9a-fA-F]{32,}"

REFERENCE_PATTERN = re.compile(rf"^({_NAME})(?::({_TAG}))?(?:@({_DIGEST}))?$")


@dataclass(frozen=True)
class Reference:
    """A parsed ``[domain/]path[:tag][@digest]`` image reference."""

    domain: str
    path: str
    tag: Optional[str] = None
    digest: Optional[str] = None

    @property
    def name(self) -> str:
        return f"{self.domain}/{self.path}" if self.domain else self.path

    def __str__(self) -> str:
        result = self.name
        if self.tag:
            result += f":{self.tag}"
        if self.digest:
            result += f"@{self.digest}"
        return result


def _split_domain(name: str) -> tuple:
    first, sep, rest = name.partition("/")
    if sep and ("." in first or ":" in first or first == "localhost"):
        return first, rest
    return "", name


def _repository_part(value: str) -> str:
    """The text before any ``:tag`` or ``@digest`` suffix."""
    name = value.partition("@")[0]
    head, sep, tail = name.rpartition(":")
    if sep and "/" not in tail:
        return head
    return name


def parse_reference(value: str) -> Reference:
    """
    Parses an image reference.

    Examples: ``myimage``, ``myimage:1.0``, ``quay.io/org/app:v2``,
    ``localhost:5000/app@sha256:<hex>``.
    """
    if not value:
        raise InvalidReferenceError("repository name must have at least one component")
    if len(_repository_part(value)) > NAME_TOTAL_LENGTH_MAX:
        raise InvalidReferenceError(
            f"repository name must not be more than {NAME_TOTAL_LENGTH_MAX} characters: {value!r}"
        )

    match = REFERENCE_PATTERN.match(value)
    if not match:
        if REFERENCE_PATTERN.match(value.lower()):
            raise InvalidReferenceError(f"repository name must be lowercase: {value!r}")
        raise InvalidReferenceError(f"invalid reference format: {value!r}")

    name, tag, digest = match.groups()
    if digest is not None and not validate_digest(digest):
        raise InvalidReferenceError(f"unsupported digest algorithm in {value!r}")

    domain, path = _split_domain(name)
    return Reference(domain=domain, path=path, tag=tag, digest=digest)


def expand_tags(names: Iterable[str]) -> List[str]:
    """Normalizes names, giving ``latest`` to those without a tag or digest."""
    expanded = []
    for name in names:
        try:
            ref = parse_reference(name)
        except InvalidReferenceError as e:
            raise InvalidReferenceError(f"error parsing tag {name!r}: {e}") from e
        if ref.tag is None and ref.digest is None:
            ref = Reference(domain=ref.domain, path=ref.path, tag=DEFAULT_TAG)
        expanded.append(str(ref))
    return expanded


def add_image_names(store: Store, image: Image, names: Iterable[str]) -> List[str]:
    """Adds ``names`` to the names already bound to ``image``; returns the full list."""
    merged = list(image.names)
    for name in names:
        if name not in merged:
            merged.append(name)
    store.set_names(image.id, merged)
    return merged
