"""Interface of the generic cross-transport image copy engine."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Protocol, Union

from .config import Compression
from .transports import ImageReference, SystemContext


@dataclass(frozen=True)
class CopyOptions:
    report_writer: Optional[Any] = None
    compression: Compression = Compression.UNCOMPRESSED


class CopyEngine(Protocol):
    """Copies every layer, the full configuration and the manifest from ``src`` to ``dest``."""

    def copy_image(
        self,
        policy_context: Any,
        dest: ImageReference,
        src: ImageReference,
        options: CopyOptions,
    ) -> None:
        ...


def get_system_context(signature_policy_path: Optional[Union[str, Path]]) -> SystemContext:
    if signature_policy_path:
        return SystemContext(signature_policy_path=str(signature_policy_path))
    return SystemContext()


def get_copy_options(
    report_writer: Optional[Any],
    compression: Compression = Compression.UNCOMPRESSED,
) -> CopyOptions:
    return CopyOptions(report_writer=report_writer, compression=compression)
