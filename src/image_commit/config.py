"""Option schemas for committing and pushing images, using Pydantic."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, List, Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator

OCI_V1_IMAGE_MANIFEST = "application/vnd.oci.image.manifest.v1+json"
DOCKER_V2_SCHEMA2_MANIFEST = "application/vnd.docker.distribution.manifest.v2+json"

SUPPORTED_MANIFEST_TYPES = (OCI_V1_IMAGE_MANIFEST, DOCKER_V2_SCHEMA2_MANIFEST)


class Compression(str, Enum):
    """Compression applied to layer blobs."""

    UNCOMPRESSED = "uncompressed"
    GZIP = "gzip"
    BZIP2 = "bzip2"
    XZ = "xz"
    ZSTD = "zstd"


class _Options(BaseModel):
    compression: Compression = Compression.UNCOMPRESSED
    """Compression for layer blobs. Gzip is recommended for registries."""

    signature_policy_path: Optional[Path] = None
    """Override location of the signature policy. Leave unset for the system-wide default."""

    report_writer: Optional[Any] = Field(default=None, exclude=True)
    """Object with a ``write`` method that receives progress output of the copy."""

    @field_validator("report_writer")
    @classmethod
    def _check_writer(cls, value: Any) -> Any:
        if value is not None and not callable(getattr(value, "write", None)):
            raise ValueError("report_writer must have a write() method")
        return value

    @classmethod
    def from_yaml(cls, path: Union[str, Path], **overrides: Any):
        """Loads and validates options from a YAML file."""
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
        data.update(overrides)
        return cls.model_validate(data)


class CommitOptions(_Options):
    """Alters how a working container is committed to an image."""

    preferred_manifest_type: str = OCI_V1_IMAGE_MANIFEST
    """Preferred manifest type. The configuration format follows from it."""

    additional_tags: List[str] = Field(default_factory=list)
    """Extra names to add to the image, where the destination transport allows it."""

    history_timestamp: Optional[datetime] = None
    """Timestamp for new history entries. Defaults to the current time."""

    @field_validator("preferred_manifest_type")
    @classmethod
    def _check_manifest_type(cls, value: str) -> str:
        if not value:
            return OCI_V1_IMAGE_MANIFEST
        if value not in SUPPORTED_MANIFEST_TYPES:
            raise ValueError(f"unsupported manifest type {value!r}")
        return value


class PushOptions(_Options):
    """Alters how a committed image is copied somewhere else."""

    store: Optional[Any] = Field(default=None, exclude=True)
    """The local store holding the source image."""
