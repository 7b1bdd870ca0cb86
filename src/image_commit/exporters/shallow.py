"""Shallow commit: write a container straight into the local object store."""

from __future__ import annotations

import io
import logging
import secrets
from contextlib import ExitStack, closing
from dataclasses import replace
from typing import Optional

from ..builder import Builder
from ..digest import GZIPPED_EMPTY_LAYER, canonical_digest
from ..errors import (
    EmptyConfigError,
    SourceViewError,
    TagBindingError,
    UnnamedDestinationError,
    store_operation,
    wrap_errors,
)
from ..rollback import Rollback
from ..storage import Image, Layer, Store
from ..tags import add_image_names, expand_tags
from ..transports import (
    BlobInfo,
    ImageReference,
    StoreTransport,
    SystemContext,
    image_name,
)

logger = logging.getLogger(__name__)

PACKAGE = "image-commit"


def generate_random_id() -> str:
    """Returns a random 64 character hex ID whose 12 character short form is not all digits."""
    while True:
        value = secrets.token_hex(32)
        if not value[:12].isdigit():
            return value


def temporary_image_name() -> str:
    return f"{generate_random_id()}-tmp-{PACKAGE}-commit"


class ShallowExporter:
    """
    Copies the most recent layer, the configuration and the manifest of a
    container into a new image in local storage.

    Local storage does not care about histories or the manifest's contents,
    so this skips the generic copy machinery. Any other destination needs the
    full export path.
    """

    def __init__(self, store: Store, transport: StoreTransport):
        self.store = store
        self.transport = transport

    def export(
        self,
        builder: Builder,
        dest: ImageReference,
        src: ImageReference,
        system_context: Optional[SystemContext] = None,
    ) -> Image:
        """
        Writes ``src`` to ``dest`` and returns the new image.

        The config and manifest are staged in a temporary image, which is
        removed on every exit. If anything fails once the new layer exists,
        the new image and layer are removed again, so no name is ever bound
        to a partial image.
        """
        dest_name = image_name(dest)
        target = dest.docker_reference()
        if target is None:
            raise UnnamedDestinationError(f"can't write to an unnamed image {dest_name!r}")
        names = expand_tags([target])

        tmp_name = temporary_image_name()
        with store_operation("parsing temporary image reference", tmp_name):
            tmp_ref = self.transport.parse_store_reference(self.store, tmp_name)

        with Rollback() as rollback:
            rollback.always(
                f"deleting temporary image {tmp_name!r}",
                lambda: tmp_ref.delete_image(system_context),
            )
            tmp_img = self._write_temporary_image(dest_name, src, tmp_ref, system_context)

            with store_operation("reading list of named data for image", tmp_img.id):
                items = self.store.list_image_big_data(tmp_img.id)

            layer = self._copy_container_layer(builder)
            rollback.on_failure(
                f"removing layer {layer.id!r}", lambda: self.store.delete_layer(layer.id)
            )

            with store_operation("creating new low-level image", dest_name):
                image = self.store.create_image(layer.id)
            logger.debug("created image ID %r", image.id)
            rollback.on_failure(
                f"removing image {image.id!r}",
                lambda: self.store.delete_image(image.id, commit=True),
            )

            # Copy by value: the temporary image is about to go away.
            for item in items:
                with store_operation(f"copying data item {item!r} to image", image.id):
                    data = self.store.image_big_data(tmp_img.id, item)
                    self.store.set_image_big_data(image.id, item, data)
                logger.debug("copied data item %r to %r", item, image.id)

            # Readers expect a parsable metadata field on every image.
            with store_operation("assigning metadata to new image", image.id):
                self.store.set_metadata(image.id, "{}")

            try:
                bound = add_image_names(self.store, image, names)
            except Exception as e:
                raise TagBindingError(f"error assigning names {names} to new image: {e}") from e
            logger.debug("assigned names %s to image %r", bound, image.id)

        return replace(image, names=bound, metadata="{}")

    def _write_temporary_image(
        self,
        dest_name: str,
        src: ImageReference,
        tmp_ref: ImageReference,
        system_context: Optional[SystemContext],
    ) -> Image:
        with ExitStack() as stack:
            with wrap_errors(
                SourceViewError, f"error reading configuration to write to image {dest_name!r}"
            ):
                src_image = stack.enter_context(closing(src.new_image(system_context)))
            with store_operation("opening temporary copy of image for writing", dest_name):
                tmp_image = stack.enter_context(
                    closing(tmp_ref.new_image_destination(system_context))
                )

            # The image format requires at least one layer blob.
            with store_operation("writing dummy layer for image", dest_name):
                tmp_image.put_blob(
                    io.BytesIO(GZIPPED_EMPTY_LAYER), BlobInfo(size=len(GZIPPED_EMPTY_LAYER))
                )

            with wrap_errors(SourceViewError, f"error reading new configuration for image {dest_name!r}"):
                config = src_image.config_blob()
            if not config:
                raise EmptyConfigError(
                    f"error reading new configuration for image {dest_name!r}: it's empty"
                )
            logger.debug("read configuration blob %r", config.decode("utf-8", errors="replace"))

            config_info = BlobInfo(digest=canonical_digest(config), size=len(config))
            with store_operation("writing image configuration for temporary copy of", dest_name):
                tmp_image.put_blob(io.BytesIO(config), config_info)

            # Mostly synthetic; it references the config and empty layer written above.
            with wrap_errors(SourceViewError, f"error reading new manifest for image {dest_name!r}"):
                manifest, _ = src_image.manifest()
            with store_operation("writing new manifest to temporary copy of image", dest_name):
                tmp_image.put_manifest(manifest)

            with store_operation("committing new image", dest_name):
                tmp_image.commit()

        with store_operation("locating temporary image", dest_name):
            return self.transport.get_store_image(self.store, tmp_ref)

    def _copy_container_layer(self, builder: Builder) -> Layer:
        """Creates a read-only copy of the container's changes on top of its source image's layer."""
        with store_operation("reading information about working container", builder.container_id):
            container = self.store.container(builder.container_id)

        parent_layer = ""
        if container.image_id:
            with store_operation(
                "reading information about the source image of working container",
                builder.container_id,
            ):
                parent_layer = self.store.image(container.image_id).top_layer

        with store_operation("reading layer from working container", builder.container_id):
            diff = self.store.diff(parent_layer, container.layer_id)
        with closing(diff):
            with store_operation(
                "creating new read-only layer from container", builder.container_id
            ):
                return self.store.put_layer(parent_layer, diff)
