"""Media catalog and response directive models."""

from dataclasses import dataclass, field
from enum import Enum


class MediaType(str, Enum):
    """Deliverable media kinds."""

    IMAGE = "image"
    VIDEO = "video"


@dataclass(frozen=True)
class MediaDescriptor:
    """One asset from the external media catalog."""

    key: str  # stable addressable key, e.g. the catalog public id
    url: str
    type: MediaType
    description: str
    caption: str | None = None


@dataclass(frozen=True)
class Directive:
    """A `[MEDIA: <ref>]` instruction found in completion output."""

    ref: str
    caption: str | None = None


@dataclass
class ParsedResponse:
    """Completion output split into user-visible prose and directives."""

    prose: str
    directives: list[Directive] = field(default_factory=list)
