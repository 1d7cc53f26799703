"""Request, result and timing types for campaign asset search.

``SearchRequest`` is validated with pydantic; everything produced while a
request is being served (fusion entries, ranked results, timings) is a plain
dataclass scoped to that request.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from libs.asset_store.base import CandidateItem, RecordType

from .errors import SearchValidationError

MISSING_QUERY_MESSAGE = "At least one of 'free_text_query' or 'keywords' must be provided"


class SearchMode(str, Enum):
    """Retrieval path that served a request."""
    VECTOR_ONLY = "vector_only"
    TEXT_ONLY = "text_only"
    MANUAL_HYBRID = "manual_hybrid"
    NATIVE_HYBRID = "native_hybrid"

    @property
    def requires_vector(self) -> bool:
        return self is not SearchMode.TEXT_ONLY


class SearchRequest(BaseModel):
    """A campaign asset search.

    Blank query strings count as absent. At least one of ``free_text_query``
    (semantic) or ``keywords`` (lexical) must remain.
    """

    model_config = ConfigDict(frozen=True)

    free_text_query: Optional[str] = Field(None, description="Natural-language query for semantic search")
    keywords: Optional[str] = Field(None, description="Keyword query for lexical search")
    campaign_id: str = Field(..., min_length=1, description="Campaign the search is scoped to")
    record_type: Optional[RecordType] = Field(None, description="Restrict results to one asset type")
    limit: int = Field(10, ge=1, description="Maximum number of results")
    min_score: float = Field(0.7, ge=0.0, le=1.0, description="Minimum canonical score")

    @field_validator("free_text_query", "keywords")
    @classmethod
    def _blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        return value or None

    @model_validator(mode="after")
    def _require_query(self) -> "SearchRequest":
        if self.free_text_query is None and self.keywords is None:
            raise ValueError(MISSING_QUERY_MESSAGE)
        return self

    @property
    def has_free_text(self) -> bool:
        return self.free_text_query is not None

    @property
    def has_keywords(self) -> bool:
        return self.keywords is not None

    @property
    def query_length(self) -> int:
        """Length of the query that drove the search (free text first)."""
        return len(self.free_text_query or self.keywords or "")


def _describe_validation_error(exc: ValidationError) -> str:
    messages = []
    for error in exc.errors():
        message = error["msg"]
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        location = ".".join(str(part) for part in error.get("loc", ()))
        messages.append(f"{location}: {message}" if location else message)
    return "; ".join(messages)


def build_search_request(**fields: Any) -> SearchRequest:
    """Validate raw fields into a ``SearchRequest``.

    Raises
    - SearchValidationError: with an actionable message, before any I/O
    """
    try:
        return SearchRequest(**fields)
    except ValidationError as e:
        raise SearchValidationError(_describe_validation_error(e)) from e


@dataclass(frozen=True)
class FusionEntry:
    """Intermediate merge record for one candidate id.

    Ranks are 1-indexed positions in the source lists; ``None`` means the
    candidate was absent from that list.
    """
    id: str
    item: CandidateItem
    vector_rank: Optional[int]
    text_rank: Optional[int]
    raw_fusion_score: float


@dataclass(frozen=True)
class RankedResult:
    """A candidate with its canonical score and the mode that produced it."""
    id: str
    attributes: Mapping[str, Any]
    relevance_score: float
    score: float
    mode: SearchMode

    @classmethod
    def from_candidate(cls, item: CandidateItem, score: float, mode: SearchMode) -> "RankedResult":
        return cls(
            id=item.id,
            attributes=item.attributes,
            relevance_score=item.relevance_score,
            score=score,
            mode=mode,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "attributes": dict(self.attributes),
            "relevance_score": self.relevance_score,
            "score": self.score,
            "mode": self.mode.value,
        }


@dataclass
class SearchTimings:
    """Per-stage durations in milliseconds."""
    total: float = 0.0
    embedding: float = 0.0
    vector_search: float = 0.0
    text_search: float = 0.0
    fusion: float = 0.0
    conversion: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {key: round(value, 3) for key, value in asdict(self).items()}


@dataclass
class SearchResponse:
    """Ranked results plus the mode that actually executed."""
    results: List[RankedResult]
    mode: SearchMode
    timings: SearchTimings = field(default_factory=SearchTimings)

    @property
    def scores(self) -> List[float]:
        return [result.score for result in self.results]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "results": [result.to_dict() for result in self.results],
            "mode": self.mode.value,
            "timings": self.timings.to_dict(),
        }


__all__ = [
    "CandidateItem",
    "FusionEntry",
    "MISSING_QUERY_MESSAGE",
    "RankedResult",
    "RecordType",
    "SearchMode",
    "SearchRequest",
    "SearchResponse",
    "SearchTimings",
    "build_search_request",
]
