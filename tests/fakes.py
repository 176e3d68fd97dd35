"""In-memory collaborators for tests: no browser, no network."""

from __future__ import annotations

from dataclasses import dataclass, field

from core.errors import InvalidSelector
from core.models.tasks import TaskDefinition


def make_task(**overrides: object) -> TaskDefinition:
    fields: dict = {
        "name": "news",
        "url": "https://example.com/news",
        "tags": "body>div,!.promo",
        "model": "llama3",
        "prompt": "Summarize: {content}",
        "duration": None,
    }
    fields.update(overrides)
    return TaskDefinition(**fields)


@dataclass
class FakeElement:
    text: str
    selectors: set[str]


class FakeSession:
    def __init__(self, extractor: FakeExtractor) -> None:
        self._extractor = extractor

    async def navigate(self, url: str, timeout: float) -> None:
        self._extractor.navigations.append(url)
        if self._extractor.failures:
            raise self._extractor.failures.pop(0)

    async def check_selector(self, selector: str) -> None:
        if selector in self._extractor.invalid_selectors:
            raise InvalidSelector(selector, "bad syntax")

    async def collect(self, include: list[str], exclude: list[str]) -> list[str]:
        out = []
        for inc in include:
            for element in self._extractor.elements:
                if inc in element.selectors and not element.selectors & set(exclude):
                    out.append(element.text.strip())
        return out

    async def close(self) -> None:
        self._extractor.released += 1


@dataclass
class FakeExtractor:
    """Counts acquire/release; ``failures`` are raised by successive navigations."""

    elements: list[FakeElement] = field(default_factory=list)
    failures: list[Exception] = field(default_factory=list)
    invalid_selectors: set[str] = field(default_factory=set)
    acquired: int = 0
    released: int = 0
    navigations: list[str] = field(default_factory=list)

    @property
    def name(self) -> str:
        return "fake"

    async def open(self) -> FakeSession:
        self.acquired += 1
        return FakeSession(self)


@dataclass
class FakeProvider:
    reply: str = "summary"
    ping_error: Exception | None = None
    generate_errors: list[Exception] = field(default_factory=list)
    prompts: list[tuple[str, str]] = field(default_factory=list)
    closed: bool = False

    @property
    def name(self) -> str:
        return "fake"

    async def ping(self) -> None:
        if self.ping_error is not None:
            raise self.ping_error

    async def generate(self, model: str, prompt: str) -> str:
        self.prompts.append((model, prompt))
        if self.generate_errors:
            raise self.generate_errors.pop(0)
        return self.reply

    async def close(self) -> None:
        self.closed = True


class ProviderFactory:
    """Hands out one provider per call and remembers the hosts asked for."""

    def __init__(self, provider: FakeProvider | None = None) -> None:
        self.provider = provider or FakeProvider()
        self.hosts: list[str] = []

    def __call__(self, host: str) -> FakeProvider:
        self.hosts.append(host)
        return self.provider


class ListSink:
    def __init__(self) -> None:
        self.outcomes: list = []

    def record(self, outcome) -> None:
        self.outcomes.append(outcome)


class RecordingSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
