"""Signature policy loading and the policy context handed to the copy engine."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Protocol

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import PolicyConstructionError
from .transports import SystemContext

logger = logging.getLogger(__name__)

SYSTEM_DEFAULT_POLICY_PATH = Path("/etc/containers/policy.json")
USER_POLICY_PATH = Path("~/.config/containers/policy.json")


class PolicyRequirement(BaseModel):
    """One requirement an image must satisfy; type-specific fields are kept as-is."""

    model_config = ConfigDict(extra="allow")

    type: Literal[
        "insecureAcceptAnything",
        "reject",
        "signedBy",
        "sigstoreSigned",
        "signedBaseLayer",
    ]


class Policy(BaseModel):
    """A signature policy document."""

    default: List[PolicyRequirement]
    """Requirements for any image not matched by a transport scope."""

    transports: Dict[str, Dict[str, List[PolicyRequirement]]] = Field(default_factory=dict)
    """Per transport, a map of scopes to requirements. The empty scope is the transport default."""

    @field_validator("default")
    @classmethod
    def _check_default(cls, value: List[PolicyRequirement]) -> List[PolicyRequirement]:
        if not value:
            raise ValueError("default policy must contain at least one requirement")
        return value

    @classmethod
    def from_file(cls, path: Path) -> "Policy":
        # policy.json is plain JSON, which YAML parses as well.
        with open(path, "r") as f:
            data = yaml.safe_load(f)
        return cls.model_validate(data)


class PolicyContext:
    """A verification session derived from a policy."""

    def __init__(self, policy: Policy):
        self.policy = policy
        self._destroyed = False

    def requirements_for(self, transport: str, scope: str = "") -> List[PolicyRequirement]:
        """Returns the requirements that apply to an image in ``scope`` of ``transport``."""
        self._check_alive()
        scopes = self.policy.transports.get(transport, {})
        # Longest matching scope wins; "" is the transport-wide default.
        candidate = scope
        while candidate:
            if candidate in scopes:
                return scopes[candidate]
            candidate = candidate.rpartition("/")[0]
        if "" in scopes:
            return scopes[""]
        return self.policy.default

    def destroy(self) -> None:
        self._destroyed = True

    def _check_alive(self) -> None:
        if self._destroyed:
            raise RuntimeError("policy context has already been destroyed")

    def __enter__(self) -> "PolicyContext":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.destroy()


def default_policy_path(system_context: Optional[SystemContext] = None) -> Path:
    if system_context is not None and system_context.signature_policy_path:
        return Path(system_context.signature_policy_path)
    user_path = Path(os.path.expanduser(str(USER_POLICY_PATH)))
    if user_path.exists():
        return user_path
    return SYSTEM_DEFAULT_POLICY_PATH


def default_policy(system_context: Optional[SystemContext] = None) -> Policy:
    """Loads the policy from the override path in ``system_context`` or the default locations."""
    path = default_policy_path(system_context)
    try:
        policy = Policy.from_file(path)
    except FileNotFoundError as e:
        raise PolicyConstructionError(f"signature policy {str(path)!r} not found") from e
    except (OSError, yaml.YAMLError, ValidationError) as e:
        raise PolicyConstructionError(f"invalid signature policy {str(path)!r}: {e}") from e
    logger.debug("using signature policy %s", path)
    return policy


class PolicyEngine(Protocol):
    def default_policy(self, system_context: Optional[SystemContext] = None) -> Any:
        ...

    def new_policy_context(self, policy: Any) -> Any:
        ...


class FilePolicyEngine:
    """Policy engine that reads policy documents from disk."""

    def default_policy(self, system_context: Optional[SystemContext] = None) -> Policy:
        return default_policy(system_context)

    def new_policy_context(self, policy: Policy) -> PolicyContext:
        return PolicyContext(policy)


def destroy_policy_context(policy_context: Any) -> None:
    """Ends a session from any engine; contexts without ``destroy`` need no cleanup."""
    destroy = getattr(policy_context, "destroy", None)
    if callable(destroy):
        destroy()
