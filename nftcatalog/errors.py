"""Failure types raised by the NFT catalog services."""

from __future__ import annotations

from enum import Enum

from sqlalchemy.exc import InterfaceError, OperationalError


class FailureKind(str, Enum):
    """Coarse classification of why an operation failed."""

    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    QUERY_MALFORMED = "query_malformed"
    REFERENCE_MISSING = "reference_missing"
    RESOURCE_EXHAUSTED = "resource_exhausted"


class IndexerError(Exception):
    """Raised when the indexer cannot answer a query."""

    def __init__(self, message: str, kind: FailureKind):
        super().__init__(message)
        self.message = message
        self.kind = kind


class NFTServiceError(Exception):
    """Single failure surfaced by a catalog operation, keeping the upstream cause."""

    def __init__(
        self,
        message: str,
        kind: FailureKind,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.cause = cause

    @property
    def transient(self) -> bool:
        """Return ``True`` when retrying later may succeed."""

        return self.kind is FailureKind.UPSTREAM_UNAVAILABLE

    def __str__(self) -> str:
        if self.cause is None:
            return f"{self.message} ({self.kind.value})"
        return f"{self.message} ({self.kind.value}: {self.cause})"


class NFTDistributionError(NFTServiceError):
    """Failure raised by the distribution engine."""


def classify_failure(exc: BaseException) -> FailureKind:
    """Map an upstream exception onto a :class:`FailureKind`."""

    if isinstance(exc, (IndexerError, NFTServiceError)):
        return exc.kind
    if isinstance(exc, (OperationalError, InterfaceError, OSError)):
        return FailureKind.UPSTREAM_UNAVAILABLE
    return FailureKind.QUERY_MALFORMED
