"""Copy an already committed image to another location."""

from __future__ import annotations

import logging
from typing import Optional

from .builder import ImageImporter, SourceViewFactory
from .config import PushOptions
from .copier import CopyEngine, get_copy_options, get_system_context
from .errors import (
    CopyError,
    InvalidReferenceError,
    PolicyConstructionError,
    SourceViewError,
    store_operation,
    wrap_errors,
)
from .exporters.remote import CopyExporter
from .policy import FilePolicyEngine, PolicyEngine, destroy_policy_context
from .transports import ImageReference, StoreTransport, image_name

logger = logging.getLogger(__name__)


class Pusher:
    """
    Re-exports a stored image.

    There is no live container, so the builder state is reconstructed from
    the stored configuration and the image's existing layer chain is reused.
    Pushing always takes the full export path.
    """

    def __init__(
        self,
        transport: StoreTransport,
        importer: ImageImporter,
        source_views: SourceViewFactory,
        copier: CopyEngine,
        policy_engine: Optional[PolicyEngine] = None,
    ):
        self.transport = transport
        self.importer = importer
        self.source_views = source_views
        self.copier = copier
        self.policy_engine = policy_engine or FilePolicyEngine()

    def push(self, image: str, dest: ImageReference, options: PushOptions) -> None:
        """Copies the stored image named or identified by ``image`` to ``dest``."""
        store = options.store
        if store is None:
            raise SourceViewError("push needs the store holding the source image")
        system_context = get_system_context(options.signature_policy_path)

        with wrap_errors(PolicyConstructionError, "error building signature policy"):
            policy = self.policy_engine.default_policy(system_context)
            policy_context = self.policy_engine.new_policy_context(policy)

        try:
            with wrap_errors(SourceViewError, "error importing builder information from image"):
                builder = self.importer.import_builder_from_image(
                    store, image, system_context.signature_policy_path
                )

            with wrap_errors(InvalidReferenceError, f"error parsing reference to image {image!r}"):
                ref = self.transport.parse_store_reference(store, image)
            with store_operation("locating image", image):
                img = self.transport.get_store_image(store, ref)

            # The pushed image has the same ancestors as the stored one.
            builder.from_image = builder.docker.container_config.image
            builder.from_image_id = builder.docker.parent

            with wrap_errors(SourceViewError, "error recomputing layer digests and building metadata"):
                src = self.source_views.make_image_image_ref(
                    builder, options.compression, img.names, img.top_layer, None
                )

            with wrap_errors(CopyError, "error copying layers and metadata"):
                CopyExporter(self.copier).export(
                    policy_context,
                    dest,
                    src,
                    get_copy_options(options.report_writer, options.compression),
                )
            logger.debug("pushed image %r (top layer %r) to %s", img.id, img.top_layer, image_name(dest))
        finally:
            destroy_policy_context(policy_context)
