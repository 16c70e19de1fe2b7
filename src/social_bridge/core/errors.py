from __future__ import annotations

from typing import Sequence


class FederationError(Exception):
    """Base class for structured rejections raised while handling activities.

    The ``kind`` attribute lets the API and delivery layers choose an HTTP
    status or retry policy without matching on concrete classes.
    """

    kind = "federation_error"


class MalformedInputError(FederationError, ValueError):
    """Raised when an IRI or activity cannot be parsed. Nothing is processed."""

    kind = "malformed_input"


class NotFoundError(FederationError, LookupError):
    """Raised when a referenced actor, post or comment does not exist."""

    kind = "not_found"


class NotAuthorizedError(FederationError, PermissionError):
    """Raised when a mutation is attempted without a valid credential."""

    kind = "not_authorized"


class StoreUnavailableError(FederationError, RuntimeError):
    """Raised when the backing store cannot be reached. Not retried here."""

    kind = "store_unavailable"


class PartialCompletionError(FederationError):
    """Raised when a multi-item mutation applied only some of its items."""

    kind = "partial_completion"

    def __init__(self, applied: int, causes: Sequence[BaseException]) -> None:
        self.applied = applied
        self.causes = tuple(causes)
        super().__init__(
            f"applied {applied} item(s), {len(self.causes)} failed: "
            + "; ".join(str(cause) for cause in self.causes)
        )


__all__ = [
    "FederationError",
    "MalformedInputError",
    "NotFoundError",
    "NotAuthorizedError",
    "StoreUnavailableError",
    "PartialCompletionError",
]
