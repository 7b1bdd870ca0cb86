"""Image references and the transports that resolve them."""

from __future__ import annotations

import abc
from dataclasses import dataclass
from typing import BinaryIO, Dict, Optional, Protocol, Tuple

from .errors import InvalidReferenceError
from .storage import Image, Store


@dataclass(frozen=True)
class SystemContext:
    """Settings handed to transports when opening images."""

    signature_policy_path: Optional[str] = None


@dataclass(frozen=True)
class BlobInfo:
    """Digest and size of a blob being written; an empty digest lets the destination compute it."""

    digest: str = ""
    size: int = -1


class ImageView(Protocol):
    """Read side of an image: its configuration blob and manifest."""

    def config_blob(self) -> bytes:
        ...

    def manifest(self) -> Tuple[bytes, str]:
        """Return the manifest bytes and their media type."""
        ...

    def close(self) -> None:
        ...


class ImageDestination(Protocol):
    """Write side of an image; nothing is visible until ``commit``."""

    def put_blob(self, stream: BinaryIO, info: BlobInfo) -> BlobInfo:
        ...

    def put_manifest(self, manifest: bytes) -> None:
        ...

    def commit(self) -> None:
        ...

    def close(self) -> None:
        ...


class Transport(Protocol):
    name: str

    def parse_reference(self, reference: str) -> "ImageReference":
        ...


class ImageReference(Protocol):
    """A destination or source bound to one transport."""

    @property
    def transport(self) -> Transport:
        ...

    def docker_reference(self) -> Optional[str]:
        """Return the named reference (``repo:tag``), or None for unnamed references."""
        ...

    def string_within_transport(self) -> str:
        ...

    def new_image(self, system_context: Optional[SystemContext] = None) -> ImageView:
        ...

    def new_image_destination(
        self, system_context: Optional[SystemContext] = None
    ) -> ImageDestination:
        ...

    def delete_image(self, system_context: Optional[SystemContext] = None) -> None:
        ...


class StoreTransport(abc.ABC):
    """
    Base class for transports backed by the local object store.

    Destinations on these transports are committed with the shallow path and
    accept additional names after the commit.
    """

    name = "containers-storage"

    def parse_reference(self, reference: str) -> ImageReference:
        raise NotImplementedError(
            f"{type(self).__name__} needs a store to parse {reference!r}"
        )

    @abc.abstractmethod
    def parse_store_reference(self, store: Store, reference: str) -> ImageReference:
        """Resolve a name or image ID in ``store`` to a reference."""

    @abc.abstractmethod
    def get_store_image(self, store: Store, ref: ImageReference) -> Image:
        """Return the image record a reference points to."""


def is_store_reference(ref: ImageReference) -> bool:
    return isinstance(ref.transport, StoreTransport)


def image_name(ref: ImageReference) -> str:
    """Render a reference as ``transport:reference`` for messages."""
    return f"{ref.transport.name}:{ref.string_within_transport()}"


class TransportRegistry:
    """Looks up transports by name and parses ``transport:reference`` strings."""

    def __init__(self) -> None:
        self._transports: Dict[str, Transport] = {}

    def register(self, transport: Transport) -> None:
        if transport.name in self._transports:
            raise ValueError(f"transport {transport.name!r} is already registered")
        self._transports[transport.name] = transport

    def get(self, name: str) -> Optional[Transport]:
        return self._transports.get(name)

    def parse_image_name(self, image_name: str) -> ImageReference:
        transport_name, sep, within = image_name.partition(":")
        if not sep or not within:
            raise InvalidReferenceError(
                f"invalid image name {image_name!r}, expected colon-separated transport:reference"
            )
        transport = self.get(transport_name)
        if transport is None:
            raise InvalidReferenceError(
                f"invalid image name {image_name!r}, unknown transport {transport_name!r}"
            )
        return transport.parse_reference(within)
