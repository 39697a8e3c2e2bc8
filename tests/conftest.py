"""Shared fixtures: fake clock, mock Grid API, settings."""
import json
from typing import Callable, Dict, List, Optional

import httpx
import pytest

from gridclient.config import Settings
from gridclient.job_client import ImageJobClient, TextJobClient

BASE_URL = "https://grid.test/api/v2"
CDN_URL = "https://cdn.test"


@pytest.fixture
def anyio_backend():
    return "asyncio"


class FakeClock:
    """Deterministic clock whose sleep() just advances time."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


class FakeGrid:
    """
    Scripted stand-in for the Grid API behind httpx.MockTransport.

    `submit` maps a submitted prompt/models pair to a job id (or an HTTP
    error); `statuses` maps a job id to the list of status bodies returned
    in order (the last one repeats).
    """

    def __init__(self):
        self.submissions: List[Dict] = []
        self.status_calls: Dict[str, int] = {}
        self.statuses: Dict[str, List[Dict]] = {}
        self.submit_results: List = []
        self._next_id = 0

    def queue_job(self, *statuses: Dict) -> str:
        """Next submit returns a new job id whose status bodies are `statuses`."""
        self._next_id += 1
        job_id = f"job-{self._next_id}"
        self.statuses[job_id] = list(statuses)
        self.submit_results.append(job_id)
        return job_id

    def queue_submit_error(self, status_code: int = 500, body: Optional[Dict] = None):
        self.submit_results.append(httpx.Response(status_code, json=body or {"message": "boom"}))

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            self.submissions.append(json.loads(request.content))
            if not self.submit_results:
                return httpx.Response(503, json={"message": "no job queued"})
            result = self.submit_results.pop(0)
            if isinstance(result, httpx.Response):
                return result
            return httpx.Response(202, json={"id": result})

        job_id = request.url.path.rsplit("/", 1)[-1]
        count = self.status_calls.get(job_id, 0)
        self.status_calls[job_id] = count + 1
        bodies = self.statuses.get(job_id)
        if not bodies:
            return httpx.Response(404, json={"message": "unknown job"})
        body = bodies[min(count, len(bodies) - 1)]
        if isinstance(body, httpx.Response):
            # Fresh copy per request; the last scripted body may repeat
            return httpx.Response(body.status_code, content=body.content, headers=body.headers)
        return httpx.Response(200, json=body)

    def http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


def text_done(text: str, model: str = "grid/test-model") -> Dict:
    return {"done": True, "faulted": False, "generations": [{"text": text, "model": model}]}


def image_done(img: str, gen_id: Optional[str] = None) -> Dict:
    generation = {"img": img}
    if gen_id:
        generation["id"] = gen_id
    return {"done": True, "faulted": False, "generations": [generation]}


def faulted(message: str = "worker crashed") -> Dict:
    return {"done": False, "faulted": True, "faulted_message": message}


PENDING = {"done": False, "faulted": False, "waiting": 1, "processing": 0, "finished": 0}


@pytest.fixture
def grid():
    return FakeGrid()


@pytest.fixture
def make_text_client(grid, clock) -> Callable[..., TextJobClient]:
    def factory(**kwargs) -> TextJobClient:
        return TextJobClient(
            "test-key",
            BASE_URL,
            http_client=grid.http_client(),
            sleep=clock.sleep,
            clock=clock,
            **kwargs,
        )

    return factory


@pytest.fixture
def make_image_client(grid, clock) -> Callable[..., ImageJobClient]:
    def factory(**kwargs) -> ImageJobClient:
        return ImageJobClient(
            "test-key",
            BASE_URL,
            cdn_url=CDN_URL,
            http_client=grid.http_client(),
            sleep=clock.sleep,
            clock=clock,
            **kwargs,
        )

    return factory


@pytest.fixture
def settings():
    return Settings(
        grid_api_key="test-key",
        grid_api_base_url=BASE_URL,
        grid_image_cdn_url=CDN_URL,
        text_model="primary-model",
        fallback_text_model=None,
        image_model="image-model",
        fallback_image_model=None,
    )
