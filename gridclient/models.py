"""
Data model for the AI Power Grid async generation API.

Two layers live here:
- Wire models (pydantic): the status JSON as the server sends it. Fields the
  server omits or nulls are defaulted so call sites never probe optional keys.
- Domain types (dataclasses): GenerationRequest, JobHandle and the JobStatus
  tagged union (Pending | Done | Faulted | PollTimeout) that the job clients
  return.
"""
import enum
import time
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, Field, field_validator


class JobKind(enum.Enum):
    """Which API family a job belongs to."""
    TEXT = "text"
    IMAGE = "image"


# =============================================================================
# REQUEST / HANDLE
# =============================================================================

@dataclass(frozen=True)
class GenerationRequest:
    """
    One generation job to submit. Immutable once built.

    An empty model_candidates tuple means "let the server choose a worker".
    """
    prompt: str
    kind: JobKind
    model_candidates: Tuple[str, ...] = ()
    parameters: Mapping[str, Any] = field(default_factory=dict)
    style: Optional[str] = None  # image style template, e.g. "flux-photo"


@dataclass
class JobHandle:
    """
    Server-assigned job reference, owned by the client that submitted it.

    The client records the first terminal outcome on the handle so that
    polling it again never changes the answer.
    """
    id: str
    kind: JobKind
    submitted_at: float = field(default_factory=time.time)
    outcome: Optional[Any] = field(default=None, repr=False)


# =============================================================================
# PAYLOADS AND STATUS UNION
# =============================================================================

@dataclass(frozen=True)
class TextPayload:
    text: str
    model: str = "unknown"


@dataclass(frozen=True)
class ImagePayload:
    """Finished image: ephemeral server URL plus a durable CDN link when derivable."""
    url: str
    raw_id: Optional[str] = None
    permanent_url: Optional[str] = None

    @property
    def best_url(self) -> str:
        return self.permanent_url or self.url


Payload = Union[TextPayload, ImagePayload]


@dataclass(frozen=True)
class Pending:
    waiting: int = 0
    processing: int = 0
    finished: int = 0


@dataclass(frozen=True)
class Done:
    payload: Payload


@dataclass(frozen=True)
class Faulted:
    message: str


@dataclass(frozen=True)
class PollTimeout:
    waited_seconds: float
    attempts: int


JobStatus = Union[Pending, Done, Faulted, PollTimeout]


def is_terminal(status: JobStatus) -> bool:
    """Pending is the only non-terminal status."""
    return not isinstance(status, Pending)


# =============================================================================
# WIRE MODELS
# =============================================================================

class WireGeneration(BaseModel):
    """One entry of the `generations` array (text and image share the shape)."""
    text: Optional[str] = None
    model: Optional[str] = None
    img: Optional[str] = None
    id: Optional[str] = None


class WireStatus(BaseModel):
    """Status response from GET .../status/{id}."""
    id: Optional[str] = None
    done: bool = False
    faulted: bool = False
    faulted_message: Optional[str] = None
    message: Optional[str] = None
    waiting: int = 0
    processing: int = 0
    finished: int = 0
    generations: List[WireGeneration] = Field(default_factory=list)

    @field_validator("done", "faulted", mode="before")
    @classmethod
    def null_to_false(cls, v):
        """The API sends null for flags on some queued jobs."""
        return bool(v) if v is not None else False

    @field_validator("waiting", "processing", "finished", mode="before")
    @classmethod
    def null_to_zero(cls, v):
        return v if v is not None else 0

    @field_validator("generations", mode="before")
    @classmethod
    def ensure_list(cls, v):
        if v is None:
            return []
        return v

    @property
    def first_generation(self) -> Optional[WireGeneration]:
        return self.generations[0] if self.generations else None

    @property
    def fault_text(self) -> str:
        return self.faulted_message or self.message or "Unknown error"


class WireSubmitResponse(BaseModel):
    """Response from POST .../async."""
    id: Optional[str] = None
    message: Optional[str] = None
