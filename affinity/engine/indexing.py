"""
Keyword indexing pipeline.

Per note: read -> normalize -> extract (with retry) -> validate -> persist ->
verify. Keywords and their timestamp are written together or not at all.
Batches walk the vault one note at a time so the extraction backend never
sees more than one request from us.
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional

from loguru import logger

from .bus import Event, EventBus
from .config import Config
from .errors import AffinityError, ExtractionTimeout, ValidationError
from .extraction import KeywordExtractionClient
from .models import IndexRecord, Note, clean_keywords, is_valid_keyword_set, parse_timestamp
from .normalize import normalize_content
from .retry import RetryPolicy
from .staleness import StalenessPolicy
from .store import NOTE_CHANGED, MetadataStore


class IndexState(Enum):
    READING = "reading"
    NORMALIZING = "normalizing"
    EXTRACTING = "extracting"
    VALIDATING = "validating"
    PERSISTING = "persisting"
    VERIFYING = "verifying"
    DONE = "done"
    FAILED = "failed"


@dataclass
class IndexOutcome:
    """Result of one note's pipeline."""
    path: str
    state: IndexState = IndexState.READING
    keywords: List[str] = field(default_factory=list)
    attempts: int = 0
    error: Optional[BaseException] = None
    indexed_at_ms: Optional[int] = None
    confirmed: bool = False
    verified: bool = False

    @property
    def succeeded(self) -> bool:
        return self.state == IndexState.DONE


@dataclass
class BatchReport:
    """Counters for a batch operation."""
    operation: str
    total: int = 0
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    cancelled: bool = False
    failures: Dict[str, str] = field(default_factory=dict)

    def record_failure(self, path: str, error: BaseException) -> None:
        self.failed += 1
        self.failures[path] = str(error) or type(error).__name__

    def summary(self) -> str:
        text = (
            f"{self.operation}: processed {self.processed}/{self.total}, "
            f"success {self.succeeded}, failed {self.failed}, skipped {self.skipped}"
        )
        if self.cancelled:
            text += " (cancelled)"
        return text

    def to_dict(self) -> Dict:
        return {
            "operation": self.operation,
            "total": self.total,
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "cancelled": self.cancelled,
        }


def epoch_ms() -> int:
    return int(time.time() * 1000)


class IndexingOrchestrator:
    """Drives single-note and batch keyword indexing."""

    def __init__(
        self,
        config: Config,
        store: MetadataStore,
        client: KeywordExtractionClient,
        event_bus: Optional[EventBus] = None,
        clock: Callable[[], int] = epoch_ms,
        sleep: Callable[[float], "asyncio.Future"] = asyncio.sleep
    ):
        self.config = config
        self.indexing = config.indexing
        self.store = store
        self.client = client
        self.event_bus = event_bus
        self.policy = StalenessPolicy(config.indexing)
        self.retry_policy = RetryPolicy(
            max_attempts=config.indexing.max_attempts,
            base_delay=config.indexing.retry_delay_s,
        )
        self._clock = clock
        self._sleep = sleep

    async def _emit(self, event_type: str, data: Dict) -> None:
        if self.event_bus is not None and self.event_bus.running:
            await self.event_bus.emit(Event(type=event_type, data=data, source="indexer"))

    # -- single note -------------------------------------------------------

    async def index_note(self, path: str) -> IndexOutcome:
        """
        Run the full pipeline for one note.

        Per-note errors end in a FAILED outcome instead of an exception, and
        a failed note's metadata is left exactly as it was.
        """
        outcome = IndexOutcome(path=path)

        try:
            note = await self.store.read_note(path)
        except AffinityError as e:
            return await self._fail(outcome, e)

        outcome.state = IndexState.NORMALIZING
        content = normalize_content(note.content)

        keywords = await self._extract_with_retry(note, content, outcome)
        if keywords is None:
            return await self._fail(outcome, outcome.error)

        outcome.state = IndexState.PERSISTING
        record = IndexRecord(tuple(keywords), self._clock())
        metadata = dict(note.metadata)
        metadata.update(record.as_metadata(self.indexing))

        arrived = None
        if self.event_bus is not None and self.event_bus.running:
            arrived = self.event_bus.expect(
                NOTE_CHANGED, lambda event: event.data.get("path") == path
            )

        try:
            await self.store.set_metadata(path, metadata)
        except AffinityError as e:
            if arrived is not None:
                arrived.cancel()
            return await self._fail(outcome, e)

        outcome.keywords = list(record.keywords)
        outcome.indexed_at_ms = record.indexed_at_ms

        outcome.state = IndexState.VERIFYING
        if arrived is not None:
            outcome.confirmed = await EventBus.race(
                arrived, self.indexing.visibility_timeout_s
            )
            if not outcome.confirmed:
                logger.debug(
                    f"No change notification for {path} within "
                    f"{self.indexing.visibility_timeout_s}s, continuing"
                )
        outcome.verified = await self._verify(path, record)

        outcome.state = IndexState.DONE
        logger.info(f"Indexed {path}: {len(keywords)} keywords")
        await self._emit("index.completed", {"path": path, "keywords": list(keywords)})
        return outcome

    async def _extract_with_retry(
        self,
        note: Note,
        content: str,
        outcome: IndexOutcome
    ) -> Optional[List[str]]:
        state = self.retry_policy.new_state()
        timeout = self.config.extraction.timeout_s

        while True:
            outcome.attempts = state.begin_attempt()
            outcome.state = IndexState.EXTRACTING
            try:
                raw = await asyncio.wait_for(
                    self.client.extract(content, note.title), timeout=timeout
                )
                outcome.state = IndexState.VALIDATING
                keywords = clean_keywords(raw or [])
                if not is_valid_keyword_set(keywords):
                    raise ValidationError(keywords)
                return keywords
            except asyncio.TimeoutError:
                error = ExtractionTimeout(f"keyword extraction timed out after {timeout}s")
            except AffinityError as e:
                error = e

            if not state.record_failure(error):
                outcome.error = error
                return None

            logger.warning(
                f"Keyword extraction for {note.path} failed "
                f"(attempt {state.attempts}/{self.retry_policy.max_attempts}): {error}; "
                f"retrying in {state.next_delay:.1f}s"
            )
            await self._emit("index.retry", {
                "path": note.path,
                "attempt": state.attempts,
                "max_attempts": self.retry_policy.max_attempts,
                "error": str(error),
            })
            await self._sleep(state.next_delay)

    async def _verify(self, path: str, record: IndexRecord) -> bool:
        """Re-read the block and check the timestamp landed. Best effort."""
        try:
            stored = await self.store.get_metadata(path)
        except AffinityError as e:
            logger.warning(f"Could not re-read {path} after indexing: {e}")
            return False

        stored_ms = parse_timestamp(stored.get(self.indexing.last_index_time_property))
        if stored_ms == record.indexed_at_ms:
            return True
        logger.warning(
            f"Index time for {path} may not have been written: "
            f"expected {record.indexed_at_ms}, found {stored_ms}"
        )
        return False

    async def _fail(self, outcome: IndexOutcome, error: Optional[BaseException]) -> IndexOutcome:
        outcome.state = IndexState.FAILED
        outcome.error = error
        logger.error(f"Indexing {outcome.path} failed after {outcome.attempts} attempt(s): {error}")
        await self._emit("index.failed", {"path": outcome.path, "error": str(error)})
        return outcome

    # -- batches -----------------------------------------------------------

    async def _needs_index(self, path: str) -> bool:
        if self.policy.is_excluded(path):
            logger.debug(f"Skipping excluded note: {path}")
            return False
        if self.indexing.reindex_existing:
            return True
        note = await self.store.read_note(path)
        if is_valid_keyword_set(note.keywords(self.indexing)):
            logger.debug(f"Skipping already indexed note: {path}")
            return False
        return True

    async def _needs_reindex(self, path: str) -> bool:
        if self.policy.is_excluded(path):
            return False
        note = await self.store.read_note(path)
        decision = self.policy.evaluate(path, note.modified_ms, note.last_indexed(self.indexing))
        return decision.stale

    async def _run_batch(
        self,
        operation: str,
        select: Callable[[str], "asyncio.Future"],
        cancel: Optional[asyncio.Event]
    ) -> BatchReport:
        paths = await self.store.list_notes()
        report = BatchReport(operation=operation, total=len(paths))
        logger.info(f"{operation}: checking {len(paths)} notes")

        for path in paths:
            if cancel is not None and cancel.is_set():
                report.cancelled = True
                logger.info(f"{operation} cancelled after {report.processed} notes")
                break

            report.processed += 1
            try:
                if not await select(path):
                    report.skipped += 1
                    continue
                outcome = await self.index_note(path)
            except Exception as e:
                logger.error(f"{operation}: {path} failed: {e}")
                report.record_failure(path, e)
                continue

            if outcome.succeeded:
                report.succeeded += 1
            else:
                report.record_failure(path, outcome.error)

            await self._emit("batch.progress", {
                "operation": operation,
                "path": path,
                "processed": report.processed,
                "total": report.total,
            })

        logger.info(report.summary())
        await self._emit("batch.completed", report.to_dict())
        return report

    async def index_all(self, cancel: Optional[asyncio.Event] = None) -> BatchReport:
        """Index every included note that has no keyword set yet."""
        return await self._run_batch("index-all", self._needs_index, cancel)

    async def reindex_stale(self, cancel: Optional[asyncio.Event] = None) -> BatchReport:
        """Re-index notes edited since their keywords were generated."""
        return await self._run_batch("reindex-stale", self._needs_reindex, cancel)

    async def remove_all_keywords(self, cancel: Optional[asyncio.Event] = None) -> BatchReport:
        """Delete the keyword and index-time keys from every note that has them."""
        keys = [self.indexing.keywords_property, self.indexing.last_index_time_property]
        paths = await self.store.list_notes()
        report = BatchReport(operation="remove-all-keywords", total=len(paths))

        for path in paths:
            if cancel is not None and cancel.is_set():
                report.cancelled = True
                break

            report.processed += 1
            try:
                removed = await self.store.remove_keys(path, keys)
            except AffinityError as e:
                logger.error(f"Could not remove keywords from {path}: {e}")
                report.record_failure(path, e)
                continue

            if removed:
                report.succeeded += 1
            else:
                report.skipped += 1

        logger.info(report.summary())
        await self._emit("batch.completed", report.to_dict())
        return report
