"""The working container state read by commit, and the collaborators that render it."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Sequence

from .config import Compression
from .transports import ImageReference


@dataclass
class HistoryEntry:
    created_by: str = ""
    created: Optional[datetime] = None
    comment: str = ""
    empty_layer: bool = False


@dataclass
class ImageConfig:
    """Image configuration accumulated while a container is being built."""

    cmd: List[str] = field(default_factory=list)
    entrypoint: List[str] = field(default_factory=list)
    env: List[str] = field(default_factory=list)
    labels: Dict[str, str] = field(default_factory=dict)
    working_dir: str = ""
    user: str = ""
    history: List[HistoryEntry] = field(default_factory=list)


@dataclass
class ContainerConfig:
    image: str = ""


@dataclass
class DockerConfig:
    """Docker-compatible view of the image configuration, kept for provenance."""

    parent: str = ""
    container_config: ContainerConfig = field(default_factory=ContainerConfig)


@dataclass
class Builder:
    """
    A working container and the configuration accumulated for its next image.

    The caller owns the builder; committing reads it and never changes its
    lifecycle.
    """

    store: Any
    container_id: str
    from_image: str = ""
    from_image_id: str = ""
    config: ImageConfig = field(default_factory=ImageConfig)
    docker: DockerConfig = field(default_factory=DockerConfig)


class SourceViewFactory(Protocol):
    """Computes layer digests and config/manifest bytes for a builder."""

    def make_container_image_ref(
        self,
        builder: Builder,
        manifest_type: str,
        exporting: bool,
        compression: Compression,
        history_timestamp: Optional[datetime],
    ) -> ImageReference:
        """View of the builder's live container, read-only."""
        ...

    def make_image_image_ref(
        self,
        builder: Builder,
        compression: Compression,
        names: Sequence[str],
        layer_id: str,
        history_timestamp: Optional[datetime],
    ) -> ImageReference:
        """View of an already stored image whose top layer is ``layer_id``."""
        ...


class ImageImporter(Protocol):
    def import_builder_from_image(
        self, store: Any, image: str, signature_policy_path: Optional[str] = None
    ) -> Builder:
        """Rebuilds builder fields from a stored image's configuration."""
        ...
