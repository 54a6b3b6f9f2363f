"""
Tasting AI — Test Configuration (conftest.py)
==============================================

What:  Shared fixtures and test doubles for the whole suite.
Why:   Pipeline behaviour depends on time, sleeping and remote AI calls.
       Tests replace all three so a "24h TTL" or a "3s backoff" runs in
       microseconds and never touches the network.

Fixture Hierarchy (all function-scoped):
    ├── clock:        FakeClock, advanced explicitly by tests
    ├── sleeps:       list of delays the fake sleep was asked for
    ├── fake_sleep:   async sleep that advances the clock instead of waiting
    ├── database:     temporary SQLite file with tables created
    ├── gemini:       ScriptedGemini standing in for both Gemini clients
    ├── media:        StubMedia returning fixed image/audio bytes
    ├── settings:     Settings isolated from the developer's .env
    ├── service:      PipelineService wired from all of the above
    └── test_client:  HTTPX AsyncClient bound to an app using `service`
"""

import asyncio
import os
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from pydantic import BaseModel

# Set before any tasting_ai import: the module-level Settings reads them
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./test_tasting_ai.db"
os.environ["GEMINI_API_KEY"] = ""
os.environ["LOG_LEVEL"] = "WARNING"

from tasting_ai.config import Settings  # noqa: E402
from tasting_ai.database import Database  # noqa: E402
from tasting_ai.schemas.pipeline import ProcessOptions  # noqa: E402
from tasting_ai.services.adapter_base import AdapterConfig, ProviderAdapter  # noqa: E402
from tasting_ai.services.media import MediaBlob  # noqa: E402
from tasting_ai.services.pipeline_service import build_pipeline_service  # noqa: E402


# ══════════════════════════════════════════════════════════════════════════
# Test Doubles
# ══════════════════════════════════════════════════════════════════════════

START_TIME = 1_700_000_000.0  # 2023-11-14T22:13:20Z, 20s into a minute window


class FakeClock:
    def __init__(self, start: float = START_TIME):
        self._now = start

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += seconds


LABEL_TEXT = """CHÂTEAU MARGAUX
Grand Vin
Bordeaux
2015
Cabernet Sauvignon, Merlot
Red Wine
13.5% alc/vol"""

TRANSCRIPT = (
    "Deep ruby colour, pronounced nose of blackcurrant and cedar, dry with "
    "high tannins and a long finish"
)

ANALYSIS_JSON = """{
  "appearance": {"color": "ruby", "intensity": "deep", "clarity": "clear"},
  "nose": {"intensity": "pronounced", "aromas": ["blackcurrant", "cedar"], "faults": []},
  "palate": {"sweetness": "dry", "acidity": "medium(+)", "tannins": "high", "alcohol": "medium",
             "body": "full", "flavors": ["cassis", "tobacco"], "finish": "long"},
  "conclusion": {"quality": "very good", "readiness": "can drink now, but has potential for ageing",
                 "potential": null},
  "confidence": 82,
  "suggested_corrections": []
}"""


class ScriptedGemini:
    """
    Stands in for GeminiClient. Answers by request shape:

        image part          → label_text
        audio part          → transcript
        json_output=True    → analysis_json
        text-only prompt    → improved (terminology pass), else echoes transcript

    `failures[kind]` is a list of exceptions raised, in order, before the
    scripted answer for that kind ("image", "audio", "analysis", "improve").
    """

    def __init__(
        self,
        label_text: str = LABEL_TEXT,
        transcript: str = TRANSCRIPT,
        analysis_json: str = ANALYSIS_JSON,
        improved: Optional[str] = None,
    ):
        self.label_text = label_text
        self.transcript = transcript
        self.analysis_json = analysis_json
        self.improved = improved
        self.failures: Dict[str, List[Exception]] = {}
        self.calls: List[str] = []
        self.configured = True
        self.healthy = True

    async def generate(self, parts, *, temperature=None, json_output=False) -> str:
        media = [part for part in parts if isinstance(part, MediaBlob)]
        if json_output:
            kind = "analysis"
        elif media and media[0].mime_type.startswith("image/"):
            kind = "image"
        elif media:
            kind = "audio"
        else:
            kind = "improve"
        self.calls.append(kind)

        pending = self.failures.get(kind)
        if pending:
            raise pending.pop(0)

        if kind == "analysis":
            return self.analysis_json
        if kind == "image":
            return self.label_text
        if kind == "audio":
            return self.transcript
        return self.improved if self.improved is not None else self.transcript

    async def health_check(self) -> bool:
        return self.healthy


class StubMedia:
    """Returns fixed bytes for any reference with a known extension."""

    def __init__(self):
        self.loaded: List[str] = []

    async def load_image(self, reference: str) -> MediaBlob:
        self.loaded.append(reference)
        return MediaBlob(data=b"\xff\xd8\xff\xe0fake-jpeg\xff\xd9", mime_type="image/jpeg", name=reference)

    async def load_audio(self, reference: str) -> MediaBlob:
        self.loaded.append(reference)
        return MediaBlob(data=b"fake-m4a-audio", mime_type="audio/mp4", name=reference)


class ScriptedAdapter(ProviderAdapter):
    """
    Adapter whose provider call replays `outcomes` in order: exceptions are
    raised, anything else is returned. The last outcome repeats forever.
    """

    def __init__(
        self,
        config: AdapterConfig,
        outcomes: List[Any],
        result_model: type,
        delay: float = 0.0,
        empty: bool = False,
        **dependencies: Any,
    ):
        super().__init__(config, **dependencies)
        self.outcomes = list(outcomes)
        self.result_model = result_model
        self.delay = delay
        self.empty = empty
        self.calls = 0
        self.inputs: List[Any] = []

    async def call_provider(self, raw_input: Any, options: ProcessOptions) -> Any:
        self.calls += 1
        self.inputs.append(raw_input)
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def cache_key_material(self, raw_input: Any) -> Any:
        if isinstance(raw_input, BaseModel):
            return raw_input.model_dump(mode="json")
        return raw_input

    def is_empty(self, result: Any) -> bool:
        return self.empty


# ══════════════════════════════════════════════════════════════════════════
# Fixtures
# ══════════════════════════════════════════════════════════════════════════


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def fake_sleep(clock, sleeps):
    """
    Async sleep that records the delay and moves the fake clock forward,
    so backoff shows up in latencies without the test waiting.
    """

    async def _sleep(seconds: float) -> None:
        sleeps.append(seconds)
        clock.advance(seconds)

    return _sleep


@pytest_asyncio.fixture
async def database(tmp_path):
    """
    A fresh SQLite database per test.

    What:  Real tables (cache entries and session log) in a temp file.
    Why:   The cache and log are thin SQL layers; a real engine catches
           mapping mistakes a mock would hide.
    """
    db = Database.from_url(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture
def gemini():
    return ScriptedGemini()


@pytest.fixture
def media():
    return StubMedia()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        gemini_api_key="test-key-not-real",
        media_root=str(tmp_path / "media"),
        log_level="WARNING",
    )


@pytest.fixture
def service(settings, database, clock, media, gemini, fake_sleep):
    return build_pipeline_service(
        settings,
        database=database,
        clock=clock,
        media=media,
        vision_client=gemini,
        language_client=gemini,
        sleep=fake_sleep,
    )


@pytest_asyncio.fixture
async def test_client(service, settings):
    """
    HTTPX AsyncClient talking to the FastAPI app in-process.

    ASGITransport does not run the lifespan, which is why the injected
    service's tables are created by the `database` fixture.
    """
    from tasting_ai.main import create_app

    app = create_app(service=service, app_settings=settings)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
