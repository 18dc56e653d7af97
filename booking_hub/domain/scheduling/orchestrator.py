"""
Parallel fetch orchestrator

One task per (entity, window) pair, joined with a wait-all-settled barrier.
Every task yields a tagged FetchResult instead of raising, so one failing or
slow source never aborts or delays its siblings.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol

from ...config import FETCH_CONCURRENCY, FETCH_TIMEOUT_SECONDS
from ...errors import AuthError, BookingHubError, PerWindowFetchError
from ..entities.schemas import Entity
from .schemas import RecordsPayload
from .windows import Window

logger = logging.getLogger(__name__)


class RecordSource(Protocol):
    async def get_records(self, entity: Entity, window: Window) -> RecordsPayload: ...


@dataclass(frozen=True)
class FetchResult:
    """Outcome of one (entity, window) fetch"""

    entity: Entity
    window: Window
    ok: bool
    payload: Optional[RecordsPayload] = None
    error: Optional[BookingHubError] = None


@dataclass
class FetchReport:
    results: list[FetchResult] = field(default_factory=list)

    @property
    def total_count(self) -> int:
        return len(self.results)

    @property
    def failed_count(self) -> int:
        return sum(1 for r in self.results if not r.ok)

    @property
    def failures(self) -> list[FetchResult]:
        return [r for r in self.results if not r.ok]


class FetchOrchestrator:
    """Fan-out/fan-in over a record source with bounded concurrency"""

    def __init__(
        self,
        source: RecordSource,
        timeout: float = FETCH_TIMEOUT_SECONDS,
        concurrency: int = FETCH_CONCURRENCY,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.source = source
        self.timeout = timeout
        self.concurrency = concurrency

    async def _fetch_one(
        self, entity: Entity, window: Window, semaphore: asyncio.Semaphore
    ) -> FetchResult:
        async with semaphore:
            try:
                payload = await asyncio.wait_for(
                    self.source.get_records(entity, window), timeout=self.timeout
                )
                return FetchResult(entity=entity, window=window, ok=True, payload=payload)
            except asyncio.TimeoutError:
                logger.warning(
                    f"⏰ Fetch for entity {entity.id} window {window} timed out after {self.timeout}s"
                )
                error = PerWindowFetchError(
                    f"Timed out after {self.timeout}s",
                    entity_id=entity.id,
                    window_label=str(window),
                    timed_out=True,
                )
                return FetchResult(entity=entity, window=window, ok=False, error=error)
            except AuthError as e:
                return FetchResult(entity=entity, window=window, ok=False, error=e)
            except Exception as e:
                logger.warning(f"⚠️ Fetch for entity {entity.id} window {window} failed: {e}")
                error = PerWindowFetchError(
                    str(e),
                    entity_id=entity.id,
                    window_label=str(window),
                    status_code=getattr(e, "status_code", None),
                )
                return FetchResult(entity=entity, window=window, ok=False, error=error)

    async def fetch_all(self, entities: list[Entity], windows: list[Window]) -> FetchReport:
        """
        Fetch every (entity, window) pair concurrently and wait for all to settle.

        Raises:
            AuthError: after all siblings settled, if any fetch was rejected as unauthenticated
        """
        if not entities or not windows:
            return FetchReport()

        semaphore = asyncio.Semaphore(self.concurrency)
        tasks = [
            self._fetch_one(entity, window, semaphore)
            for entity in entities
            for window in windows
        ]
        results = await asyncio.gather(*tasks)
        report = FetchReport(results=list(results))

        for result in report.results:
            if isinstance(result.error, AuthError):
                logger.error(f"❌ Fetch rejected for entity {result.entity.id}: {result.error}")
                raise result.error

        if report.failed_count:
            logger.warning(
                f"⚠️ {report.failed_count} of {report.total_count} sources failed, continuing with partial data"
            )
        else:
            logger.info(f"✅ Fetched {report.total_count} sources")
        return report
