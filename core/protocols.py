"""Core protocols -- the extension points the pipeline talks to.

The pipeline imports these protocols. Plugins implement them.
The core NEVER imports concrete implementations.

All protocols use Python's structural subtyping (typing.Protocol):
if your class has the right methods, it implements the protocol.
No inheritance required.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from core.models.tasks import Failure, Result


# ---------------------------------------------------------------------------
# 1. ContentExtractor -- render a page and pull text out of it
# ---------------------------------------------------------------------------

@runtime_checkable
class ExtractionSession(Protocol):
    """One acquired extraction resource (e.g. a browser session).

    Sessions are never shared between pipeline runs or attempts. The caller
    must always call ``close()``, whatever happened before.
    """

    async def navigate(self, url: str, timeout: float) -> None:
        """Load the target. Raises ExtractionFailed on timeout/unreachable."""
        ...

    async def check_selector(self, selector: str) -> None:
        """Raise InvalidSelector if the engine rejects the selector syntax."""
        ...

    async def collect(self, include: list[str], exclude: list[str]) -> list[str]:
        """Text of every include match that matches no exclude selector.

        Ordered by include selector, then document order.
        """
        ...

    async def close(self) -> None:
        """Release the resource. Must not raise."""
        ...


@runtime_checkable
class ContentExtractor(Protocol):
    """Factory for extraction sessions."""

    @property
    def name(self) -> str:
        """Extractor name, e.g. 'selenium'."""
        ...

    async def open(self) -> ExtractionSession:
        """Acquire a fresh session. Raises ExtractionFailed if that fails."""
        ...


# ---------------------------------------------------------------------------
# 2. InferenceProvider -- send prompt + content, get generated text back
# ---------------------------------------------------------------------------

@runtime_checkable
class InferenceProvider(Protocol):
    """Talks to one inference service address."""

    @property
    def name(self) -> str:
        ...

    async def ping(self) -> None:
        """Cheap reachability check. Raises InferenceFailed when unreachable."""
        ...

    async def generate(self, model: str, prompt: str) -> str:
        """Return the generated text. Raises InferenceFailed on error/empty."""
        ...

    async def close(self) -> None:
        ...


# ---------------------------------------------------------------------------
# 3. ResultSink -- append-only record of terminal outcomes
# ---------------------------------------------------------------------------

@runtime_checkable
class ResultSink(Protocol):
    def record(self, outcome: Result | Failure) -> None:
        """Persist one terminal outcome. Must not raise."""
        ...
