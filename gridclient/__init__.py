"""
Client layer for the AI Power Grid generation API and the RSS sources.
"""
from .config import AcceptancePolicy, FeedSource, Settings
from .errors import ConfigError, EmptyResultError, GenerationError, SubmissionError
from .feeds import FeedItem, FeedReader, FeedTracker
from .job_client import GenerationJobClient, ImageJobClient, TextJobClient
from .models import (
    Done,
    Faulted,
    GenerationRequest,
    ImagePayload,
    JobHandle,
    JobKind,
    JobStatus,
    Pending,
    PollTimeout,
    TextPayload,
)

__all__ = [
    "AcceptancePolicy",
    "FeedSource",
    "Settings",
    "ConfigError",
    "EmptyResultError",
    "GenerationError",
    "SubmissionError",
    "FeedItem",
    "FeedReader",
    "FeedTracker",
    "GenerationJobClient",
    "ImageJobClient",
    "TextJobClient",
    "Done",
    "Faulted",
    "GenerationRequest",
    "ImagePayload",
    "JobHandle",
    "JobKind",
    "JobStatus",
    "Pending",
    "PollTimeout",
    "TextPayload",
]
