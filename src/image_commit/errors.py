"""Exceptions raised while committing or pushing images."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional, Type


class CommitError(Exception):
    """Base exception for all commit and push failures."""


class UnnamedDestinationError(CommitError):
    """Raised when a local-storage destination has no name to bind."""


class EmptyConfigError(CommitError):
    """Raised when the source view produced a zero-length configuration blob."""


class InvalidReferenceError(CommitError):
    """Raised when an image name or tag cannot be parsed."""


class StoreOperationError(CommitError):
    """Raised when a read, write or delete against the Store fails."""

    def __init__(self, operation: str, object_id: str, reason: Optional[object] = None):
        self.operation = operation
        self.object_id = object_id
        message = f"error {operation} {object_id!r}"
        if reason is not None:
            message = f"{message}: {reason}"
        super().__init__(message)


class PolicyConstructionError(CommitError):
    """Raised when the signature policy or its context cannot be built."""


class SourceViewError(CommitError):
    """Raised when the source image view cannot be computed."""


class CopyError(CommitError):
    """Raised when writing layers and metadata to the destination fails."""


class TagBindingError(CommitError):
    """Raised when additional names cannot be bound to the committed image."""


@contextmanager
def wrap_errors(error_cls: Type[CommitError], message: str) -> Iterator[None]:
    """Re-raise anything but ``error_cls`` as ``error_cls`` carrying ``message``."""
    try:
        yield
    except error_cls:
        raise
    except Exception as e:
        raise error_cls(f"{message}: {e}") from e


@contextmanager
def store_operation(operation: str, object_id: str) -> Iterator[None]:
    """Wrap Store failures with the operation and object they concerned."""
    try:
        yield
    except StoreOperationError:
        raise
    except Exception as e:
        raise StoreOperationError(operation, object_id, e) from e


def cause(exc: BaseException) -> BaseException:
    """
    Return the exception that started an explicit ``raise ... from`` chain.

    The walk stops at the innermost ``CommitError``, so the raw library error
    beneath a ``StoreOperationError`` is not returned in its place.
    """
    while exc.__cause__ is not None:
        if isinstance(exc, CommitError) and not isinstance(exc.__cause__, CommitError):
            break
        exc = exc.__cause__
    return exc
