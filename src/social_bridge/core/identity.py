from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List
from urllib.parse import urlparse

from .errors import MalformedInputError

COLLECTION_KINDS = ("followers", "following", "outbox")


def _path_segments(iri: Any, *, label: str) -> List[str]:
    """Split an IRI into its non-empty path segments, ignoring query and fragment."""
    if not isinstance(iri, str) or not iri.strip():
        raise MalformedInputError(f"{label} must be a non-empty IRI")
    parsed = urlparse(iri.strip())
    return [segment for segment in parsed.path.split("/") if segment]


def id_from_activity_id(iri: Any) -> str:
    """Return the bare local identifier at the end of an activity or object IRI.

    ``https://host/activitypub/users/alice/status/0b9e`` yields ``0b9e``.
    """
    segments = _path_segments(iri, label="activity id")
    if not segments:
        raise MalformedInputError(f"no identifier in IRI {iri!r}")
    return segments[-1]


def name_from_id(actor_iri: Any) -> str:
    """Return the local-part of an actor IRI.

    The segment following ``users`` wins, so ``https://host/users/bob/`` and
    ``https://host/activitypub/users/bob`` both yield ``bob``.
    """
    segments = _path_segments(actor_iri, label="actor id")
    if "users" in segments:
        index = segments.index("users")
        if index + 1 < len(segments):
            return segments[index + 1]
    if not segments:
        raise MalformedInputError(f"no actor name in IRI {actor_iri!r}")
    return segments[-1]


def host_of(iri: Any) -> str:
    """Return the lower-cased hostname of an absolute IRI."""
    if not isinstance(iri, str):
        raise MalformedInputError("IRI must be a string")
    hostname = urlparse(iri.strip()).hostname
    if not hostname:
        raise MalformedInputError(f"IRI {iri!r} has no host")
    return hostname


@dataclass(frozen=True)
class IdentityCodec:
    """Maps between local slugs and the actor IRIs of this instance."""

    base_url: str

    @property
    def host(self) -> str:
        return host_of(self.base_url)

    def id_from_name(self, name: str) -> str:
        """Canonical actor IRI for a local name."""
        if not name:
            raise MalformedInputError("actor name must not be empty")
        return f"{self.base_url.rstrip('/')}/activitypub/users/{name}"

    def is_local(self, actor_iri: str) -> bool:
        return host_of(actor_iri) == self.host

    def slug_for(self, actor_iri: str) -> str:
        """Derive the per-store unique slug for an actor IRI.

        Same-host actors keep their bare name, remote ones are prefixed with
        their origin host.
        """
        name = name_from_id(actor_iri)
        if self.is_local(actor_iri):
            return name
        return f"{host_of(actor_iri)}-{name}"

    def owner_from_collection_id(self, collection_iri: str) -> str:
        """Strip the page query and collection suffix from a collection IRI."""
        if not isinstance(collection_iri, str) or not collection_iri:
            raise MalformedInputError("collection id must be a non-empty IRI")
        owner = collection_iri.split("?", 1)[0].rstrip("/")
        for kind in COLLECTION_KINDS:
            suffix = f"/{kind}"
            if owner.endswith(suffix):
                return owner[: -len(suffix)]
        return owner


__all__ = [
    "COLLECTION_KINDS",
    "IdentityCodec",
    "host_of",
    "id_from_activity_id",
    "name_from_id",
]
