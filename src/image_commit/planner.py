"""The Planner decides how a commit reaches its destination."""

from __future__ import annotations

from dataclasses import dataclass

from .transports import ImageReference, is_store_reference


@dataclass(frozen=True)
class CommitPlan:
    """
    How a single commit is carried out.

    exporting: write every layer, the full configuration and manifest through
        the copy engine. When False, the shallow path writes only the newest
        layer, configuration and manifest straight into the local store.
    can_tag: whether additional names can be bound after the image is written.
    """

    transport_name: str
    exporting: bool
    can_tag: bool


class CommitPlanner:
    """Maps a destination's transport to a commit strategy."""

    def plan(self, dest: ImageReference) -> CommitPlan:
        local = is_store_reference(dest)
        return CommitPlan(
            transport_name=dest.transport.name,
            exporting=not local,
            can_tag=local,
        )
