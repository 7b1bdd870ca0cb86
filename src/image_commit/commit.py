"""Commit a working container to a new image."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import List, Optional

from .builder import Builder, SourceViewFactory
from .config import CommitOptions
from .copier import CopyEngine, get_copy_options, get_system_context
from .errors import (
    CopyError,
    PolicyConstructionError,
    SourceViewError,
    TagBindingError,
    wrap_errors,
)
from .exporters.remote import CopyExporter
from .exporters.shallow import ShallowExporter
from .planner import CommitPlan, CommitPlanner
from .policy import FilePolicyEngine, PolicyEngine, destroy_policy_context
from .storage import Image, Store
from .tags import add_image_names
from .transports import ImageReference, image_name

logger = logging.getLogger(__name__)


class Committer:
    """
    Writes the contents of a builder's container, along with its updated
    configuration, to a new image and adds any additional tags the
    destination transport can take.
    """

    def __init__(
        self,
        source_views: SourceViewFactory,
        copier: CopyEngine,
        policy_engine: Optional[PolicyEngine] = None,
        planner: Optional[CommitPlanner] = None,
    ):
        self.source_views = source_views
        self.copier = copier
        self.policy_engine = policy_engine or FilePolicyEngine()
        self.planner = planner or CommitPlanner()

    def commit(
        self,
        builder: Builder,
        dest: ImageReference,
        options: Optional[CommitOptions] = None,
    ) -> Optional[Image]:
        """
        Commits ``builder`` to ``dest``.

        Returns the new image when it was written to local storage, None when
        it was exported elsewhere.
        """
        options = options or CommitOptions()
        system_context = get_system_context(options.signature_policy_path)

        with wrap_errors(PolicyConstructionError, "error building signature policy"):
            policy = self.policy_engine.default_policy(system_context)
            policy_context = self.policy_engine.new_policy_context(policy)

        try:
            plan = self.planner.plan(dest)

            with wrap_errors(SourceViewError, "error computing layer digests and building metadata"):
                src = self.source_views.make_container_image_ref(
                    builder,
                    options.preferred_manifest_type,
                    plan.exporting,
                    options.compression,
                    options.history_timestamp,
                )

            image = None
            if plan.exporting:
                with wrap_errors(CopyError, "error copying layers and metadata"):
                    CopyExporter(self.copier).export(
                        policy_context,
                        dest,
                        src,
                        get_copy_options(options.report_writer, options.compression),
                    )
            else:
                with wrap_errors(CopyError, "error copying layer and metadata"):
                    image = ShallowExporter(builder.store, dest.transport).export(
                        builder, dest, src, system_context
                    )

            if options.additional_tags:
                tagged = self._add_tags(builder.store, dest, plan, options.additional_tags)
                image = tagged or image
            return image
        finally:
            destroy_policy_context(policy_context)

    def _add_tags(
        self, store: Store, dest: ImageReference, plan: CommitPlan, tags: List[str]
    ) -> Optional[Image]:
        if not plan.can_tag:
            logger.warning(
                "don't know how to add tags to images stored in %r transport",
                plan.transport_name,
            )
            return None

        with wrap_errors(TagBindingError, f"error locating just-written image {image_name(dest)!r}"):
            img = dest.transport.get_store_image(store, dest)
        with wrap_errors(TagBindingError, f"error setting image names to {img.names + list(tags)}"):
            names = add_image_names(store, img, tags)
        logger.debug("assigned names %s to image %r", names, img.id)
        return replace(img, names=names)
