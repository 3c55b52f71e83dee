"""Segment types describing how an input sequence is laid out.

A chunk is an ordered list of segments. Text segments carry token ids, one
sequence position each; embedding blocks stand in for non-text content
(image patches) that occupies a fixed number of positions. The width of an
embedding block is a property of the deployment, not of the block.
"""

from dataclasses import dataclass, field
import json


# =============================================================================
# Segment Types
# =============================================================================

@dataclass
class TokenRun:
    """A run of text tokens.

    Attributes:
        token_ids: Vocabulary indices, in sequence order
    """
    token_ids: list[int] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.token_ids)

    def to_dict(self) -> dict:
        return {"type": "TokenRun", "token_ids": list(self.token_ids)}

    @classmethod
    def from_dict(cls, d: dict) -> "TokenRun":
        return cls(token_ids=list(d["token_ids"]))


@dataclass
class EmbeddingBlock:
    """An opaque non-text block (e.g. an image).

    Attributes:
        source: Optional label for display, such as an image URL. Never
            used to determine the block's width.
    """
    source: str | None = None

    def to_dict(self) -> dict:
        return {"type": "EmbeddingBlock", "source": self.source}

    @classmethod
    def from_dict(cls, d: dict) -> "EmbeddingBlock":
        return cls(source=d.get("source"))


Segment = TokenRun | EmbeddingBlock


def as_segment(item) -> Segment:
    """Coerce a chunk item into a segment.

    Plain lists and tuples of ints become a TokenRun, dicts are deserialized,
    segments pass through unchanged.
    """
    if isinstance(item, (TokenRun, EmbeddingBlock)):
        return item
    if isinstance(item, (list, tuple)):
        return TokenRun(token_ids=list(item))
    if isinstance(item, dict):
        return segment_from_dict(item)
    raise TypeError(
        f"Expected TokenRun, EmbeddingBlock or list of token ids, got {type(item).__name__}"
    )


def as_chunk(items) -> list[Segment]:
    """Coerce every item of a chunk layout into a segment."""
    return [as_segment(item) for item in items]


# =============================================================================
# Serialization Helpers
# =============================================================================

def segment_from_dict(d: dict) -> Segment:
    """Reconstruct a segment from a dict."""
    type_map = {
        "TokenRun": TokenRun,
        "EmbeddingBlock": EmbeddingBlock,
    }
    segment_type = d.get("type")
    if segment_type not in type_map:
        raise ValueError(f"Unknown segment type: {segment_type}")
    return type_map[segment_type].from_dict(d)


def chunk_to_json(chunk: list) -> str:
    """Serialize a chunk layout to JSON."""
    return json.dumps([as_segment(s).to_dict() for s in chunk])


def chunk_from_json(s: str) -> list[Segment]:
    """Deserialize a chunk layout from JSON."""
    return [segment_from_dict(d) for d in json.loads(s)]
