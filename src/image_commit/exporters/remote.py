"""Full export of an image through the generic copy engine."""

from __future__ import annotations

from typing import Any

from ..copier import CopyEngine, CopyOptions
from ..transports import ImageReference


class CopyExporter:
    """
    Copies every layer, the full configuration and the manifest.

    Used for every destination outside local storage, where consumers expect
    complete histories and a manifest that matches the layers they pull.
    """

    def __init__(self, copier: CopyEngine):
        self.copier = copier

    def export(
        self,
        policy_context: Any,
        dest: ImageReference,
        src: ImageReference,
        options: CopyOptions,
    ) -> None:
        self.copier.copy_image(policy_context, dest, src, options)
