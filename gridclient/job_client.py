"""
Job clients for the AI Power Grid async generation API.

Both API families (text and image) follow the same protocol:
- POST the request to .../async and receive a job id
- GET .../status/{id} repeatedly until the job is done or faulted

GenerationJobClient implements that state machine once; TextJobClient and
ImageJobClient only differ in endpoints, poll interval and how a finished
job's payload is extracted.

Retry policy:
- submit(): never retried here. Transport errors surface as SubmissionError
  and the fallback orchestrator decides what to try next.
- poll(): status checks are idempotent, so transport errors are retried with
  a backoff until the caller's wait budget runs out.
"""
import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, Optional
from urllib.parse import urlparse

import httpx
import structlog

from .errors import EmptyResultError, SubmissionError
from .models import (
    Done,
    Faulted,
    GenerationRequest,
    ImagePayload,
    JobHandle,
    JobKind,
    JobStatus,
    Payload,
    Pending,
    PollTimeout,
    TextPayload,
    WireStatus,
    WireSubmitResponse,
    is_terminal,
)

logger = structlog.get_logger()

DEFAULT_BASE_URL = "https://api.aipowergrid.io/api/v2"
DEFAULT_IMAGE_CDN_URL = "https://images.aipg.art"
DEFAULT_CLIENT_AGENT = "GridNewsBot:1.0"

# Backoff after a failed status check (seconds). The longer wait kicks in
# once more than ERROR_BACKOFF_THRESHOLD checks in a row have failed.
ERROR_BACKOFF_SECONDS = 8.0
ERROR_BACKOFF_MAX_SECONDS = 20.0
ERROR_BACKOFF_THRESHOLD = 3

# Generated text shorter than this is logged as suspicious (still returned)
SHORT_TEXT_WARNING_CHARS = 50

IMAGE_EXTENSION = ".webp"


class GenerationJobClient:
    """
    Submit/poll state machine shared by the text and image clients.

    Subclasses set the class attributes and implement _extract_payload().
    """

    kind: JobKind = JobKind.TEXT
    submit_path: str = ""
    status_path: str = ""
    poll_interval: float = 5.0

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        *,
        client_agent: str = DEFAULT_CLIENT_AGENT,
        timeout: int = 30,
        poll_interval: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Initialize the client.

        Args:
            api_key: Static Grid API key sent in the `apikey` header
            base_url: API root, e.g. https://api.aipowergrid.io/api/v2
            client_agent: Value for the `Client-Agent` header
            timeout: Per-request HTTP timeout in seconds
            poll_interval: Override the class default interval between status checks
            http_client: Optional pre-built httpx client (not closed by close())
            sleep: Awaitable sleep used between polls (default asyncio.sleep)
            clock: Monotonic clock used for the wait budget (default time.monotonic)
        """
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.client_agent = client_agent
        self.timeout = timeout
        if poll_interval is not None:
            self.poll_interval = poll_interval

        self._client = http_client
        self._owns_client = http_client is None
        self._sleep = sleep or asyncio.sleep
        self._clock = clock or time.monotonic

    # -------------------------------------------------------------------------
    # HTTP plumbing
    # -------------------------------------------------------------------------

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "apikey": self.api_key,
            "Client-Agent": self.client_agent,
        }

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
            self._owns_client = True
        return self._client

    async def close(self):
        """Close the HTTP client if this instance created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    # -------------------------------------------------------------------------
    # Protocol
    # -------------------------------------------------------------------------

    def build_body(self, request: GenerationRequest) -> Dict[str, Any]:
        """Build the POST body. `models` is omitted when the server should choose."""
        body: Dict[str, Any] = {
            "prompt": request.prompt,
            "params": dict(request.parameters),
        }
        if request.model_candidates:
            body["models"] = list(request.model_candidates)
        return body

    async def submit(self, request: GenerationRequest) -> JobHandle:
        """
        Create a generation job.

        Args:
            request: What to generate; prompt must be non-empty

        Returns:
            JobHandle for the new job

        Raises:
            ValueError: If the prompt is empty or the request kind is wrong
            SubmissionError: On transport/HTTP failure or a response without an id
        """
        if not request.prompt or not request.prompt.strip():
            raise ValueError("Generation prompt must not be empty")
        if request.kind != self.kind:
            raise ValueError(f"{type(self).__name__} cannot submit {request.kind.value} jobs")

        client = await self._get_client()
        url = f"{self.base_url}{self.submit_path}"

        try:
            response = await client.post(url, json=self.build_body(request), headers=self._headers())
        except httpx.HTTPError as e:
            logger.error("job_submit_transport_error", kind=self.kind.value, error=str(e))
            raise SubmissionError(f"Transport error submitting {self.kind.value} job: {e}") from e

        if response.status_code >= 400:
            detail = response.text[:300]
            try:
                data = response.json()
                if isinstance(data, dict):
                    detail = data.get("message") or data.get("detail") or detail
            except ValueError:
                pass
            logger.error(
                "job_submit_http_error",
                kind=self.kind.value,
                status_code=response.status_code,
                detail=detail,
            )
            raise SubmissionError(
                f"HTTP {response.status_code} submitting {self.kind.value} job: {detail}",
                status_code=response.status_code,
            )

        try:
            submitted = WireSubmitResponse.model_validate(response.json())
        except ValueError as e:
            raise SubmissionError(f"Unparseable submit response: {e}") from e

        if not submitted.id:
            raise SubmissionError(f"No job id in submit response: {submitted.message or 'empty body'}")

        handle = JobHandle(id=submitted.id, kind=self.kind)
        logger.info(
            "job_submitted",
            kind=self.kind.value,
            job_id=handle.id,
            models=list(request.model_candidates) or "any",
        )
        return handle

    async def check_status(self, handle: JobHandle) -> JobStatus:
        """
        One status request, decoded into the JobStatus union.

        Raises:
            httpx.HTTPError: Transport or HTTP status failure
            ValueError: Body is not valid JSON or does not match the wire model
            EmptyResultError: Job is done but carries no usable payload
        """
        client = await self._get_client()
        response = await client.get(f"{self.base_url}{self.status_path}/{handle.id}", headers=self._headers())
        response.raise_for_status()
        wire = WireStatus.model_validate(response.json())

        if wire.done:
            return Done(self._extract_payload(wire, handle))
        if wire.faulted:
            return Faulted(wire.fault_text)
        return Pending(waiting=wire.waiting, processing=wire.processing, finished=wire.finished)

    async def poll(self, handle: JobHandle, max_wait_seconds: float) -> JobStatus:
        """
        Poll a job until it is done, faulted, or the wait budget runs out.

        The first check is immediate; later checks are at least poll_interval
        apart. Failed checks back off for ERROR_BACKOFF_SECONDS (growing to
        ERROR_BACKOFF_MAX_SECONDS) without exceeding the budget.

        Args:
            handle: Job returned by submit() on this client
            max_wait_seconds: Total wait budget

        Returns:
            Done, Faulted or PollTimeout. The outcome is remembered on the
            handle and returned again on later calls without network traffic.

        Raises:
            EmptyResultError: Job finished without usable output
        """
        if handle.outcome is not None:
            if isinstance(handle.outcome, EmptyResultError):
                raise handle.outcome
            return handle.outcome
        if handle.kind != self.kind:
            raise ValueError(f"{type(self).__name__} cannot poll {handle.kind.value} jobs")

        started = self._clock()
        deadline = started + max_wait_seconds
        attempts = 0
        consecutive_failures = 0

        while True:
            attempts += 1
            try:
                status = await self.check_status(handle)
            except EmptyResultError as e:
                logger.warning("job_done_without_payload", kind=self.kind.value, job_id=handle.id)
                handle.outcome = e
                raise
            except (httpx.HTTPError, ValueError) as e:
                consecutive_failures += 1
                backoff = (
                    ERROR_BACKOFF_MAX_SECONDS
                    if consecutive_failures > ERROR_BACKOFF_THRESHOLD
                    else ERROR_BACKOFF_SECONDS
                )
                delay = min(backoff, deadline - self._clock())
                logger.warning(
                    "job_poll_error",
                    kind=self.kind.value,
                    job_id=handle.id,
                    attempt=attempts,
                    consecutive_failures=consecutive_failures,
                    retry_in=max(delay, 0),
                    error=str(e),
                )
                if delay <= 0:
                    break
            else:
                consecutive_failures = 0
                if is_terminal(status):
                    handle.outcome = status
                    logger.info(
                        "job_finished",
                        kind=self.kind.value,
                        job_id=handle.id,
                        status=type(status).__name__,
                        attempts=attempts,
                    )
                    return status

                logger.debug(
                    "job_pending",
                    kind=self.kind.value,
                    job_id=handle.id,
                    attempt=attempts,
                    waiting=status.waiting,
                    processing=status.processing,
                    finished=status.finished,
                )
                delay = self.poll_interval
                if self._clock() + delay >= deadline:
                    break

            await self._sleep(delay)

        timeout = PollTimeout(waited_seconds=self._clock() - started, attempts=attempts)
        handle.outcome = timeout
        logger.warning(
            "job_poll_timeout",
            kind=self.kind.value,
            job_id=handle.id,
            attempts=attempts,
            max_wait_seconds=max_wait_seconds,
        )
        return timeout

    async def generate(self, request: GenerationRequest, max_wait_seconds: float) -> JobStatus:
        """Submit a request and poll it to a terminal status."""
        handle = await self.submit(request)
        return await self.poll(handle, max_wait_seconds)

    def _extract_payload(self, wire: WireStatus, handle: JobHandle) -> Payload:
        raise NotImplementedError


class TextJobClient(GenerationJobClient):
    """Client for /generate/text/async + /generate/text/status."""

    kind = JobKind.TEXT
    submit_path = "/generate/text/async"
    status_path = "/generate/text/status"
    poll_interval = 5.0

    def _extract_payload(self, wire: WireStatus, handle: JobHandle) -> TextPayload:
        generation = wire.first_generation
        if generation is None:
            raise EmptyResultError(handle.id, "no generations in finished job")
        if not generation.text or not generation.text.strip():
            raise EmptyResultError(handle.id, "generated text is empty")

        if len(generation.text) < SHORT_TEXT_WARNING_CHARS:
            logger.warning("generated_text_very_short", job_id=handle.id, length=len(generation.text))

        return TextPayload(text=generation.text, model=generation.model or "unknown")


class ImageJobClient(GenerationJobClient):
    """Client for /generate/async + /generate/status."""

    kind = JobKind.IMAGE
    submit_path = "/generate/async"
    status_path = "/generate/status"
    poll_interval = 15.0

    def __init__(self, api_key: str, base_url: str = DEFAULT_BASE_URL, *, cdn_url: str = DEFAULT_IMAGE_CDN_URL, **kwargs):
        super().__init__(api_key, base_url, **kwargs)
        self.cdn_url = cdn_url.rstrip("/")

    def build_body(self, request: GenerationRequest) -> Dict[str, Any]:
        body = super().build_body(request)
        if request.style:
            body["style"] = request.style
        return body

    def _extract_payload(self, wire: WireStatus, handle: JobHandle) -> ImagePayload:
        """Image URL plus a CDN link keyed by the response id, else the generation id, else the URL tail."""
        generation = wire.first_generation
        if generation is None or not generation.img:
            raise EmptyResultError(handle.id, wire.faulted_message or "image marked done but no image url found")

        raw_id = wire.id or generation.id or image_id_from_url(generation.img)
        permanent_url = None
        if raw_id:
            permanent_url = f"{self.cdn_url}/{with_image_extension(raw_id)}"

        return ImagePayload(url=generation.img, raw_id=raw_id, permanent_url=permanent_url)


def image_id_from_url(url: str) -> Optional[str]:
    """Last path segment of an image URL, without query string."""
    tail = urlparse(url).path.rstrip("/").rsplit("/", 1)[-1]
    return tail or None


def with_image_extension(image_id: str) -> str:
    if image_id.endswith(IMAGE_EXTENSION):
        return image_id
    return f"{image_id}{IMAGE_EXTENSION}"
