"""Records and operations of the content-addressable object store."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import BinaryIO, List, Optional, Protocol, Sequence


@dataclass(frozen=True)
class Layer:
    """An immutable filesystem diff, optionally chained to a parent layer."""

    id: str
    parent: str = ""


@dataclass(frozen=True)
class Image:
    """
    An immutable image record.

    It references exactly one top layer; config, manifest and signatures are
    stored alongside it as named big-data items.
    """

    id: str
    top_layer: str
    names: List[str] = field(default_factory=list)
    metadata: str = ""


@dataclass(frozen=True)
class Container:
    """A working container: its read-write layer and the image it came from."""

    id: str
    layer_id: str
    image_id: str = ""


class Store(Protocol):
    """
    The subset of the object store used for committing images.

    Implementations are responsible for their own locking; concurrent creation
    and deletion of distinct layers and images must be safe.
    """

    def put_layer(self, parent: str, diff: BinaryIO) -> Layer:
        """Create a read-only layer on top of ``parent`` from a diff stream."""
        ...

    def delete_layer(self, layer_id: str) -> None:
        ...

    def diff(self, from_layer: str, to_layer: str) -> BinaryIO:
        """Return a stream of the changes between two layers."""
        ...

    def create_image(
        self,
        layer_id: str,
        names: Optional[Sequence[str]] = None,
        metadata: str = "",
    ) -> Image:
        ...

    def delete_image(self, image_id: str, commit: bool = True) -> None:
        ...

    def list_image_big_data(self, image_id: str) -> List[str]:
        ...

    def image_big_data(self, image_id: str, key: str) -> bytes:
        ...

    def set_image_big_data(self, image_id: str, key: str, data: bytes) -> None:
        ...

    def set_metadata(self, image_id: str, metadata: str) -> None:
        ...

    def container(self, container_id: str) -> Container:
        ...

    def image(self, image_id: str) -> Image:
        ...

    def set_names(self, image_id: str, names: Sequence[str]) -> None:
        """Bind ``names`` to the image, removing them from any other image."""
        ...
