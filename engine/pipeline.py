"""Execution pipeline -- extraction (with bounded retries), then inference.

One ``run()`` per task execution:

1. Validate the locator and selectors (InvalidInput, never retried)
2. Up to ``max_retries`` extraction attempts; each attempt acquires its own
   extraction session and always releases it before the attempt ends
3. One inference call (``inference_attempts`` is a policy knob, default 1)
4. Record the terminal Result/Failure in the result sink

``run()`` never raises for per-task problems: every classified error is
turned into a Failure so the scheduler keeps serving other tasks.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from core.errors import (
    ExtractionFailed,
    InferenceFailed,
    InvalidInput,
    InvalidSelector,
    WebObserverError,
)
from core.models.tasks import (
    CONTENT_PLACEHOLDER,
    Failure,
    Outcome,
    Result,
    TaskDefinition,
    is_http_url,
)
from core.protocols import ContentExtractor, ExtractionSession, InferenceProvider, ResultSink
from engine.selectors import validate_target

logger = logging.getLogger(__name__)

NO_CONTENT = "No content found"

ProviderFactory = Callable[[str], InferenceProvider]
Sleep = Callable[[float], Awaitable[None]]


@dataclass
class ExecutionAttempt:
    """Bookkeeping for one extraction retry loop."""

    max_attempts: int
    number: int = 0
    backoff: float = 0.0

    @property
    def remaining(self) -> int:
        return self.max_attempts - self.number

    def label(self) -> str:
        return f"{self.number}/{self.max_attempts}"


class ExecutionPipeline:
    """Runs one task end to end and reports the outcome.

    Usage:
        pipeline = ExecutionPipeline(
            extractor=SeleniumExtractor(),
            provider_factory=lambda host: OllamaProvider(host),
            result_sink=ResultLog(path),
        )
        outcome = await pipeline.run(task)
    """

    def __init__(
        self,
        extractor: ContentExtractor,
        provider_factory: ProviderFactory,
        result_sink: ResultSink | None = None,
        max_retries: int = 3,
        retry_delay: float = 2.0,
        navigation_timeout: float = 30.0,
        inference_attempts: int = 1,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._extractor = extractor
        self._provider_factory = provider_factory
        self._result_sink = result_sink
        self._max_retries = max(1, int(max_retries))
        self._retry_delay = max(0.0, float(retry_delay))
        self._navigation_timeout = float(navigation_timeout)
        self._inference_attempts = max(1, int(inference_attempts))
        self._sleep = sleep

    async def run(self, task: TaskDefinition) -> Outcome:
        """Execute ``task`` and return its Result or Failure."""
        logger.info("Running task %s", task.name)

        try:
            content = await self.extract(task)
        except WebObserverError as exc:
            return self._finish(self._failure(task, exc, "extraction"))

        try:
            text = await self.infer(task, content)
        except WebObserverError as exc:
            return self._finish(self._failure(task, exc, "inference"))

        return self._finish(Result(task_name=task.name, model=task.model, text=text))

    # ------------------------------------------------------------------
    # Extraction
    # ------------------------------------------------------------------

    async def extract(self, task: TaskDefinition) -> str:
        """Extract content with bounded retries.

        Raises:
            InvalidInput: malformed locator or selectors (no retry)
            InvalidSelector: the final attempt failed on selector syntax
            ExtractionFailed: every attempt failed
        """
        include, exclude = validate_target(task.url, task.tags)
        attempt = ExecutionAttempt(max_attempts=self._max_retries)
        last_error: WebObserverError | None = None

        while attempt.remaining > 0:
            attempt.number += 1
            logger.info(
                "Starting site parsing for %s (attempt %s)", task.url, attempt.label()
            )
            try:
                content = await self._attempt(task.url, include, exclude)
            except InvalidInput:
                raise
            except (ExtractionFailed, InvalidSelector) as exc:
                last_error = exc
            except Exception as exc:
                last_error = ExtractionFailed(f"{type(exc).__name__}: {exc}")
            else:
                logger.info("Site %s parsed successfully", task.url)
                return content

            logger.warning(
                "Error parsing %s (attempt %s): %s", task.url, attempt.label(), last_error
            )
            if attempt.remaining > 0:
                logger.info("Retrying in %.1fs...", self._retry_delay)
                attempt.backoff += self._retry_delay
                await self._sleep(self._retry_delay)

        logger.error(
            "Failed to parse %s after %d attempts (%.1fs spent in backoff)",
            task.url, attempt.number, attempt.backoff,
        )
        if isinstance(last_error, InvalidSelector):
            raise last_error
        raise ExtractionFailed(
            f"Failed to parse {task.url} after {attempt.number} attempts: {last_error}"
        )

    async def _attempt(self, url: str, include: list[str], exclude: list[str]) -> str:
        session = await self._extractor.open()
        try:
            await session.navigate(url, self._navigation_timeout)
            for selector in [*include, *exclude]:
                await session.check_selector(selector)
            texts = await session.collect(include, exclude)
        finally:
            await self._release(session, url)

        lines = [text.strip() for text in texts if text and text.strip()]
        return "\n".join(lines) or NO_CONTENT

    async def _release(self, session: ExtractionSession, url: str) -> None:
        try:
            await session.close()
        except Exception:
            logger.warning("Error closing extraction session for %s", url, exc_info=True)
        else:
            logger.debug("Extraction session closed for %s", url)

    # ------------------------------------------------------------------
    # Inference
    # ------------------------------------------------------------------

    async def infer(self, task: TaskDefinition, content: str) -> str:
        """Send the prompt with ``content`` substituted to the inference service.

        Raises:
            InvalidInput: empty model/prompt, missing placeholder, bad host
            InferenceFailed: unreachable service, error or empty response
        """
        if not task.model.strip():
            raise InvalidInput("Model must be a non-empty string")
        if not task.prompt.strip():
            raise InvalidInput("Prompt must be a non-empty string")
        if CONTENT_PLACEHOLDER not in task.prompt:
            raise InvalidInput(f"Prompt must include {CONTENT_PLACEHOLDER}")
        if not is_http_url(task.ollama_host):
            raise InvalidInput(f"Invalid ollama_host URL: {task.ollama_host!r}")

        prompt = task.prompt.replace(CONTENT_PLACEHOLDER, content, 1)
        logger.info("Starting inference with model %s at %s", task.model, task.ollama_host)

        provider = self._provider_factory(task.ollama_host)
        try:
            for number in range(1, self._inference_attempts + 1):
                try:
                    await provider.ping()
                    text = await provider.generate(task.model, prompt)
                except InferenceFailed as exc:
                    error = exc
                except Exception as exc:
                    error = InferenceFailed(f"{type(exc).__name__}: {exc}")
                else:
                    logger.info("Inference with model %s completed", task.model)
                    return text

                logger.error(
                    "Inference error for %s (attempt %d/%d): %s",
                    task.name, number, self._inference_attempts, error,
                )
                if number == self._inference_attempts:
                    raise error
        finally:
            try:
                await provider.close()
            except Exception:
                logger.debug("Inference provider close raised", exc_info=True)

        raise InferenceFailed("No inference attempt was made")

    # ------------------------------------------------------------------
    # Outcome handling
    # ------------------------------------------------------------------

    @staticmethod
    def _failure(task: TaskDefinition, exc: WebObserverError, stage: str) -> Failure:
        return Failure(task_name=task.name, kind=exc.kind, stage=stage, message=exc.message)

    def _finish(self, outcome: Outcome) -> Outcome:
        if isinstance(outcome, Result):
            logger.info("Task %s succeeded (%d chars)", outcome.task_name, len(outcome.text))
        else:
            logger.error("%s", outcome.summary())

        if self._result_sink is not None:
            self._result_sink.record(outcome)
        return outcome
