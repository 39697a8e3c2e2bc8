"""
Error taxonomy for the generation API client.

Faulted jobs and client-side poll timeouts are ordinary return values
(see models.JobStatus); only the cases below are raised.
"""
from typing import Optional


class GenerationError(Exception):
    """Base class for generation API failures."""


class SubmissionError(GenerationError):
    """Job creation failed (transport error, HTTP error, or no job id)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class EmptyResultError(GenerationError):
    """Server reported the job done but returned no usable payload."""

    def __init__(self, job_id: str, message: str = "job done but payload is empty"):
        super().__init__(f"{message} (job {job_id})")
        self.job_id = job_id


class ConfigError(Exception):
    """Fatal startup configuration problem (e.g. missing API key)."""
